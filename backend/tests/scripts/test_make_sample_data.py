"""Tests for the ridership downsampling script."""

import argparse

import pytest

from scripts.make_sample_data import (
    DEFAULT_SEED,
    LcgRandom,
    _rate,
    main,
    parse_args,
    sample_file,
)


class TestLcgRandom:
    def test_first_value(self):
        rand = LcgRandom(1)
        assert rand() == pytest.approx((1664525 + 1013904223) / 2**32)

    def test_same_seed_same_sequence(self):
        first, second = LcgRandom(42), LcgRandom(42)
        assert [first() for _ in range(5)] == [second() for _ in range(5)]

    def test_zero_seed_uses_default(self):
        assert LcgRandom(0)() == LcgRandom(DEFAULT_SEED)()

    def test_values_in_unit_interval(self):
        rand = LcgRandom(7)
        assert all(0 <= rand() < 1 for _ in range(1000))


class TestSampleFile:
    def test_header_always_kept(self, tmp_path):
        source = tmp_path / "in.csv"
        source.write_text("a,b\n1,2\n3,4\n", encoding="utf-8")
        destination = tmp_path / "out.csv"

        total, kept = sample_file(source, destination, 0.5, lambda: 0.99)

        assert (total, kept) == (3, 1)
        assert destination.read_text(encoding="utf-8") == "a,b\n"

    def test_rows_below_rate_are_kept(self, tmp_path):
        source = tmp_path / "in.csv"
        source.write_text("a,b\n1,2\n3,4", encoding="utf-8")
        destination = tmp_path / "out.csv"

        total, kept = sample_file(source, destination, 0.5, lambda: 0.1)

        assert (total, kept) == (3, 3)
        assert destination.read_text(encoding="utf-8") == "a,b\n1,2\n3,4\n"

    def test_missing_source_is_skipped(self, tmp_path):
        result = sample_file(tmp_path / "nope.csv", tmp_path / "out.csv", 0.5, LcgRandom(1))

        assert result == (0, 0)
        assert not (tmp_path / "out.csv").exists()


class TestArguments:
    @pytest.mark.parametrize("value", ["0", "1", "-0.5", "abc", "1.5"])
    def test_invalid_rates(self, value):
        with pytest.raises(argparse.ArgumentTypeError):
            _rate(value)

    def test_defaults(self):
        args = parse_args([])
        assert args.rate == 0.05
        assert args.seed is None
        assert len(args.files) == 12


def test_main_is_deterministic_with_seed(tmp_path):
    input_dir = tmp_path / "data"
    input_dir.mkdir()
    rows = "".join(f"{i},Bay St,King St\n" for i in range(200))
    (input_dir / "month.csv").write_text("id,start,end\n" + rows, encoding="utf-8")

    outputs = []
    for run in ("one", "two"):
        output_dir = tmp_path / run
        exit_code = main(
            [
                "--rate",
                "0.1",
                "--seed",
                "99",
                "--input-dir",
                str(input_dir),
                "--output-dir",
                str(output_dir),
                "--files",
                "month.csv",
            ]
        )
        assert exit_code == 0
        outputs.append((output_dir / "month.csv").read_text(encoding="utf-8"))

    assert outputs[0] == outputs[1]
    assert outputs[0].startswith("id,start,end\n")
    assert 1 < outputs[0].count("\n") < 200
