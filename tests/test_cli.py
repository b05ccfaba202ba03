"""
Tests for the stackphy command-line interface.
"""

import json
from pathlib import Path
import pytest
import yaml

from stackphy.__main__ import main, SEED_ENV, FORMAT_ENV


MODEL = """\
// Simple HKY model on a Yule tree
1.0 Yule "tree" ~
2.0 [ 0.25 0.25 0.25 0.25 ] HKY "Q" =
"tree" var "Q" var PhyloCTMC "aln" ~
[ "human" "ACGT" sequence "chimp" "ACGA" sequence ] "aln" observe
"""


@pytest.fixture
def model_file(tmp_path):
    path = tmp_path / "hky.sp"
    path.write_text(MODEL)
    return path


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv(SEED_ENV, raising=False)
    monkeypatch.delenv(FORMAT_ENV, raising=False)


def write(tmp_path, source, name="prog.sp"):
    path = tmp_path / name
    path.write_text(source)
    return str(path)


class TestCheck:
    """Test the check command."""

    def test_check_ok(self, tmp_path, capsys):
        """Valid files report operation and function counts."""
        path = write(tmp_path, ': double ( n -- n2 ) 2 * ;\n5 double "y" =')
        assert main(["check", path]) == 0
        out = capsys.readouterr().out
        assert "OK: prog.sp - 10 operation(s), 1 function(s)" in out

    def test_check_does_not_execute(self, tmp_path, capsys):
        """Runtime failures are not syntax errors."""
        path = write(tmp_path, "1 0 /")
        assert main(["check", path]) == 0

    def test_check_syntax_error(self, tmp_path, capsys):
        """Syntax errors are printed to stderr."""
        path = write(tmp_path, "[ 1 2")
        assert main(["check", path]) == 1
        err = capsys.readouterr().err
        assert "error[E104]" in err

    def test_check_reports_all_lexical_errors(self, tmp_path, capsys):
        """Every lexical error is listed."""
        path = write(tmp_path, "1 @ 2 $")
        assert main(["check", path]) == 1
        err = capsys.readouterr().err
        assert err.count("error[E001]") == 2

    def test_missing_file(self, tmp_path, capsys):
        """Missing inputs fail cleanly."""
        assert main(["check", str(tmp_path / "nope.sp")]) == 1
        assert "File not found" in capsys.readouterr().err


class TestRun:
    """Test the run command."""

    def test_run_lists_variables(self, model_file, capsys):
        """Variables are listed by kind."""
        assert main(["run", str(model_file), "--seed", "1"]) == 0
        out = capsys.readouterr().out
        assert "Stochastic variables (2):" in out
        assert "  tree ~ Yule" in out
        assert "  aln ~ PhyloCTMC (observed)" in out
        assert "Deterministic variables (1):" in out
        assert "  Q = " in out

    def test_run_prints_leftover_stack(self, tmp_path, capsys):
        """A non-empty stack is shown after the run."""
        path = write(tmp_path, "1 2 + 4")
        assert main(["run", path]) == 0
        assert "Stack: [3, 4]" in capsys.readouterr().out

    def test_run_error_location(self, tmp_path, capsys):
        """Execution errors show the file position and operation."""
        path = write(tmp_path, "1 0 /")
        assert main(["run", path]) == 1
        err = capsys.readouterr().err
        assert "prog.sp:1:5" in err
        assert "error executing operation '/'" in err

    def test_run_infinite_recursion(self, tmp_path, capsys):
        """Self-recursive functions fail without a traceback."""
        path = write(tmp_path, ": loop loop ; loop")
        assert main(["run", path]) == 1
        assert "recursion" in capsys.readouterr().err

    def test_bad_seed_env(self, model_file, capsys, monkeypatch):
        """A non-integer seed variable is reported."""
        monkeypatch.setenv(SEED_ENV, "abc")
        assert main(["run", str(model_file)]) == 1
        assert SEED_ENV in capsys.readouterr().err


class TestExport:
    """Test the export command."""

    def test_default_output_path(self, model_file, capsys):
        """Output defaults to the input name with .json."""
        assert main(["export", str(model_file)]) == 0
        output = model_file.with_suffix(".json")
        assert output.exists()
        assert f"Model successfully exported to: {output}" in capsys.readouterr().out
        doc = json.loads(output.read_text())
        assert doc["randomVariables"]["aln"]["observedValue"] == {"human": "ACGT", "chimp": "ACGA"}

    def test_yaml_from_suffix(self, model_file, tmp_path):
        """A .yaml output path selects YAML."""
        output = tmp_path / "out.yaml"
        assert main(["export", str(model_file), "-o", str(output)]) == 0
        doc = yaml.safe_load(output.read_text())
        assert doc["deterministicFunctions"]["Q"]["function"] == "hky"

    def test_format_from_environment(self, model_file, monkeypatch):
        """The format variable is used when nothing else decides."""
        monkeypatch.setenv(FORMAT_ENV, "yaml")
        assert main(["export", str(model_file)]) == 0
        assert model_file.with_suffix(".yaml").exists()

    def test_bad_format_environment(self, model_file, monkeypatch, capsys):
        """Unknown formats in the environment are rejected."""
        monkeypatch.setenv(FORMAT_ENV, "xml")
        assert main(["export", str(model_file)]) == 1
        assert FORMAT_ENV in capsys.readouterr().err

    def test_title_and_description(self, model_file, tmp_path):
        """Metadata options are written through."""
        output = tmp_path / "out.json"
        assert main([
            "export", str(model_file), "-o", str(output),
            "--title", "Primates", "--description", "Two taxa",
        ]) == 0
        meta = json.loads(output.read_text())["metadata"]
        assert meta["title"] == "Primates"
        assert meta["description"] == "Two taxa"

    def test_export_failure_writes_nothing(self, tmp_path, capsys):
        """Programs that fail are not exported."""
        path = write(tmp_path, '1.0 -1 Normal "x" ~')
        assert main(["export", path]) == 1
        assert not (tmp_path / "prog.json").exists()
        assert "E414" in capsys.readouterr().err


class TestOps:
    """Test the ops command."""

    def test_list_all(self, capsys):
        """Every operation is listed with a summary line."""
        assert main(["ops"]) == 0
        out = capsys.readouterr().out
        assert "dup" in out
        assert "[unsupported]" in out
        assert "supported" in out.splitlines()[-1]

    def test_filter_group(self, capsys):
        """--group limits the listing."""
        assert main(["ops", "--group", "tree"]) == 0
        out = capsys.readouterr().out
        assert "mrca" in out
        assert "Normal" not in out

    def test_version(self, capsys):
        """--version prints the package version."""
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0
        assert "stackphy" in capsys.readouterr().out


class TestBundledExamples:
    """The example models run cleanly."""

    EXAMPLES = Path(__file__).resolve().parent.parent / "examples"

    @pytest.mark.parametrize("name", ["hky_model.sp", "functions.sp"])
    def test_example_runs(self, name, capsys):
        """Each example checks and runs."""
        path = str(self.EXAMPLES / name)
        assert main(["check", path]) == 0
        assert main(["run", path, "--seed", "0"]) == 0

    def test_hky_example_export(self, tmp_path):
        """The HKY example exports its alignment."""
        output = tmp_path / "hky.json"
        assert main(["export", str(self.EXAMPLES / "hky_model.sp"), "-o", str(output)]) == 0
        doc = json.loads(output.read_text())
        aln = doc["randomVariables"]["alignment"]
        assert aln["distribution"]["parameters"]["siteRates"] == {"variable": "siteRates"}
        assert sorted(aln["observedValue"]) == ["chimp", "gorilla", "human"]
