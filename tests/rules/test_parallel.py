"""Test cases for the GNU parallel rule module."""

import pytest

from conftest import rule_of

TESTS = [
    ("parallel echo ::: a b c", None),
    ("parallel -j 4 gzip ::: *.log", None),
    ("parallel 'wc -l {}' ::: a b", None),
    ("parallel ::: 'echo a' 'echo b'", None),
    ("parallel rm ::: a b", "parallel.rm"),
    ("parallel --jobs 2 unlink ::: a b", "parallel.rm"),
    ("ls | parallel rm", "parallel.rm"),
    ("parallel rm -rf ::: build dist", "parallel.rm_rf"),
    ("parallel 'rm -rf {}' ::: build dist", "parallel.rm_rf"),
    ("parallel 'sudo rm -r {}' ::: build", "parallel.rm_rf"),
    ("parallel ::: 'rm -rf build' 'echo done'", "parallel.rm_rf"),
    ("parallel ::: 'echo start' 'rm old.txt'", "parallel.rm"),
]


@pytest.mark.parametrize("command,expected", TESTS)
def test_command(evaluate_cmd, command, expected):
    assert rule_of(evaluate_cmd(command)) == expected
