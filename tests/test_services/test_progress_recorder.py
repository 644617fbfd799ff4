"""Tests for the append-only progress log."""

import json

from fakes import SPACE_ID

from spacedrain.models.graph import SpaceCounts, SpaceTarget
from spacedrain.models.progress import PassResult
from spacedrain.services.progress_recorder import ProgressRecorder


class TestProgressRecorder:
    def test_creates_directory_and_appends(self, tmp_path):
        recorder = ProgressRecorder(tmp_path / "nested" / "log.jsonl")
        target = SpaceTarget(space_id=SPACE_ID)
        recorder.record_pass(PassResult(pass_number=1, ops_attempted=3), target, 10)
        recorder.record_pass(PassResult(pass_number=2), target, 10)

        lines = recorder.path.read_text().splitlines()
        assert [json.loads(line)["pass"] for line in lines] == [1, 2]

    def test_existing_lines_untouched(self, tmp_path):
        path = tmp_path / "log.jsonl"
        path.write_text('{"legacy": true}\n')
        ProgressRecorder(path).record_pass(
            PassResult(counts_before=SpaceCounts(entities=1)),
            SpaceTarget(space_id=SPACE_ID),
            5,
        )
        lines = path.read_text().splitlines()
        assert lines[0] == '{"legacy": true}'
        record = json.loads(lines[1])
        assert record["mode"] == "personal"
        assert record["countsBefore"] == {"entities": 1, "relations": 0}
