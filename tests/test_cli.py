from __future__ import annotations

import json
from pathlib import Path

import pytest

from gantt_progress.cli import build_parser, main

TASKS_YAML = """\
tasks:
  - id: t1
    name: Release
    type: summary
    start: 2024-03-01
  - id: t2
    name: Build
    parent: t1
    start: 2024-03-01
    duration: 4
    progress: 50
  - id: t3
    name: Test
    parent: t1
    start: 2024-03-05
    duration: 6
    progress: 100
"""


def _by_id(tasks: list[dict]) -> dict[int, dict]:
    return {task['id']: task for task in tasks}


def test_rollup_prints_corrected_state(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / 'tasks.yaml'
    path.write_text(TASKS_YAML, encoding='utf-8')

    rc = main(['--project-dir', str(tmp_path), 'rollup', str(path)])
    assert rc == 0

    state = json.loads(capsys.readouterr().out)
    tasks = _by_id(state['tasks'])
    assert tasks[1]['progress'] == 80
    assert tasks[2]['external_id'] == 't2'


def test_rollup_json_list(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / 'tasks.json'
    path.write_text(json.dumps([
        {'id': 'p-10', 'type': 'summary', 'start': '2024-03-01'},
        {'id': 's-20', 'type': 'summary', 'parentId': 'p-10', 'start': '2024-03-01'},
        {'id': 'l-30', 'parentId': 's-20', 'start': '2024-03-01', 'duration': 2, 'progress': 100},
        {'id': 'l-40', 'parentId': 'p-10', 'start': '2024-03-01', 'duration': 2, 'progress': 0},
    ]), encoding='utf-8')

    rc = main(['--project-dir', str(tmp_path), 'rollup', str(path), '--propagate'])
    assert rc == 0

    tasks = _by_id(json.loads(capsys.readouterr().out)['tasks'])
    assert tasks[20]['progress'] == 100
    assert tasks[10]['progress'] == 50


def test_rollup_missing_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    rc = main(['--project-dir', str(tmp_path), 'rollup', str(tmp_path / 'nope.yaml')])
    assert rc == 1
    assert 'File not found' in capsys.readouterr().err


def test_rollup_rejects_bad_shape(tmp_path: Path) -> None:
    path = tmp_path / 'tasks.yaml'
    path.write_text('tasks: 3\n', encoding='utf-8')
    assert main(['--project-dir', str(tmp_path), 'rollup', str(path)]) == 1


def test_rollup_rejects_invalid_record(tmp_path: Path) -> None:
    path = tmp_path / 'tasks.yaml'
    path.write_text('- id: t1\n  name: no start\n', encoding='utf-8')
    assert main(['--project-dir', str(tmp_path), 'rollup', str(path)]) == 1


def test_propagate_flag_defaults_to_config() -> None:
    parser = build_parser()
    assert parser.parse_args(['rollup', 'x.yaml']).propagate is None
    assert parser.parse_args(['rollup', 'x.yaml', '--propagate']).propagate is True
    assert parser.parse_args(['rollup', 'x.yaml', '--no-propagate']).propagate is False
