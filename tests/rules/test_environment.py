"""Test cases for the environment exposure rule module."""

import pytest

from conftest import rule_of

TESTS = [
    # Variables used, not dumped
    ("echo $HOME", None),
    ("printf '%s' \"$PATH\"", None),
    ("env FOO=1 make test", None),
    ("env -i bash -c 'echo hi'", None),
    ("export FOO=1", None),
    ("set -e", None),
    ("set -o pipefail", None),
    ("declare -f", None),
    ("declare -F", None),
    ("declare -a items", None),
    ("history -c", None),
    ("ps aux", None),
    ("ps -ef", None),
    ("ps -e", None),
    ("cat /proc/cpuinfo", None),
    # Dumping the environment
    ("printenv", "env.printenv"),
    ("printenv AWS_SECRET_ACCESS_KEY", "env.printenv"),
    ("env", "env.dump"),
    ("env -0", "env.dump"),
    ("env FOO=1", "env.dump"),
    ("env | grep KEY", "env.dump"),
    ("set", "env.set"),
    ("export", "env.export"),
    ("export -p", "env.export"),
    ("declare", "env.declare"),
    ("declare -x", "env.declare"),
    ("declare -p", "env.declare"),
    ("typeset -x", "env.declare"),
    ("history", "env.history"),
    ("history 50", "env.history"),
    ("sudo printenv", "env.printenv"),
    ("bash -c 'env'", "env.dump"),
    # /proc
    ("cat /proc/1/environ", "env.proc_environ"),
    ("strings /proc/self/environ", "env.proc_environ"),
    ("xxd /proc/$PID/environ", "env.proc_environ"),
    ("tr '\\0' '\\n' < /proc/self/environ", "env.proc_environ"),
    # ps with environment columns
    ("ps e", "env.ps"),
    ("ps auxe", "env.ps"),
    ("ps eww 1234", "env.ps"),
    ("ps -E", "env.ps"),
    ("ps -u steve", None),
    ("ps -C node", None),
    ("ps --user alice", None),
    ("ps -p 1234 -o pid,cmd", None),
    ("ps -u steve -E", "env.ps"),
    # Containers
    ("docker ps", None),
    ("docker logs web", None),
    ("docker exec web ls", None),
    ("docker run -e MODE=prod app", None),
    ("docker image ls", None),
    ("docker inspect web", "env.container_inspect"),
    ("docker container inspect web", "env.container_inspect"),
    ("podman inspect web", "env.container_inspect"),
    ("docker --context prod inspect web", "env.container_inspect"),
    ("docker exec web env", "env.container_env"),
    ("docker exec -it web printenv", "env.container_env"),
    ("docker run --rm alpine env", "env.container_env"),
    ("docker exec web sh -c env", "env.container_env"),
    ("docker compose exec web env", "env.container_env"),
    ("docker compose -f dev.yml exec web printenv", "env.container_env"),
    ("docker-compose exec web printenv", "env.container_env"),
    ("podman-compose run web env", "env.container_env"),
]


@pytest.mark.parametrize("command,expected", TESTS)
def test_command(evaluate_cmd, command, expected):
    assert rule_of(evaluate_cmd(command)) == expected


def test_matched_text_is_segment(evaluate_cmd):
    assert evaluate_cmd("env | sort").matched_text == "env"
