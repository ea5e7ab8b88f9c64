import hashlib

from braid.channel.commitment import commit_exploration, commit_path
from braid.engine.view import empty_mask
from braid.net.client import PlayerClient


def test_commit_path_hashes_cells_in_order():
    path = [(0, 0), (1, 0), (1, 12)]
    assert commit_path(path) == hashlib.sha256(b"0,01,01,12").digest()
    assert commit_path(list(reversed(path))) != commit_path(path)
    assert commit_path([]) == hashlib.sha256(b"").digest()


def test_commit_exploration_hashes_revealed_cells_x_major():
    mask = empty_mask(3, 3)
    mask[2][0] = True
    mask[0][1] = True
    assert commit_exploration(mask) == hashlib.sha256(b"0,12,0").digest()


def test_client_commits_to_solution_path():
    client = PlayerClient(1, 3, 3)
    path = [(0, 0), (0, 1), (1, 1)]
    assert client.commit_solution(path) == commit_path(path)
    assert client.solution_path == path
    assert client.path_commitment == commit_path(path)
