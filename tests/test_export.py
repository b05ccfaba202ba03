"""
Tests for CodePhy export.
"""

import json
import pytest
import yaml

from stackphy import compile_and_run, CodePhyExporter, __version__
from stackphy.export import (
    CODEPHY_VERSION, DEFAULT_TITLE, SOFTWARE_URL,
    default_output_path, generates, phylospec_type,
)
from stackphy.runtime import DistributionKind


TIMESTAMP = "2024-01-01T00:00:00+00:00"

HKY_MODEL = """
1.0 Yule "tree" ~
2.0 [ 0.25 0.25 0.25 0.25 ] HKY "Q" =
"tree" var "Q" var PhyloCTMC "aln" ~
[ "human" "ACGT" sequence "chimp" "ACGA" sequence ] "aln" observe
"""


def export(source, **kwargs):
    kwargs.setdefault("timestamp", TIMESTAMP)
    return CodePhyExporter(compile_and_run(source, seed=0), **kwargs)


class TestDocument:
    """Test the top-level document layout."""

    def test_document_keys(self):
        """Top-level keys appear in a fixed order."""
        doc = export('1.0 0.5 Normal "x" ~').to_dict()
        assert list(doc) == [
            "codephyVersion", "model", "metadata",
            "randomVariables", "deterministicFunctions",
        ]
        assert doc["codephyVersion"] == CODEPHY_VERSION

    def test_metadata(self):
        """Metadata names the software and the fixed timestamp."""
        meta = export("").to_dict()["metadata"]
        assert meta["title"] == DEFAULT_TITLE
        assert meta["created"] == TIMESTAMP
        assert meta["modified"] == TIMESTAMP
        assert meta["software"] == {
            "name": "StackPhy", "version": __version__, "url": SOFTWARE_URL,
        }

    def test_custom_title(self):
        """Title and description can be overridden."""
        meta = export("", title="Primates", description="HKY on a Yule tree").to_dict()["metadata"]
        assert meta["title"] == "Primates"
        assert meta["description"] == "HKY on a Yule tree"

    def test_empty_environment(self):
        """No bindings gives empty sections."""
        doc = export("").to_dict()
        assert doc["randomVariables"] == {}
        assert doc["deterministicFunctions"] == {}


class TestRandomVariables:
    """Test stochastic variable conversion."""

    def test_normal(self):
        """Distributions carry type, generated value type and parameters."""
        entry = export('1.0 0.5 Normal "x" ~').random_variables()["x"]
        assert entry == {
            "distribution": {
                "type": "Normal",
                "generates": "Real",
                "parameters": {"mean": 1.0, "sd": 0.5},
            }
        }

    def test_integers_preserved(self):
        """Integer literals stay integers."""
        params = export('0 1 Normal "x" ~').random_variables()["x"]["distribution"]["parameters"]
        assert params == {"mean": 0, "sd": 1}
        assert isinstance(params["sd"], int)

    def test_variable_reference(self):
        """Variable parameters are exported by name."""
        source = '1.0 Exponential "sigma" ~ 0.0 "sigma" var Normal "x" ~'
        params = export(source).random_variables()["x"]["distribution"]["parameters"]
        assert params["sd"] == {"variable": "sigma"}

    def test_dirichlet_concentrations_are_reals(self):
        """Dirichlet alpha is always a list of floats."""
        dist = export('[ 1 1 1 1 ] Dirichlet "pi" ~').random_variables()["pi"]["distribution"]
        assert dist["generates"] == "Vector"
        assert dist["parameters"]["alpha"] == [1.0, 1.0, 1.0, 1.0]
        assert all(isinstance(a, float) for a in dist["parameters"]["alpha"])

    def test_tree_prior(self):
        """Tree priors generate trees."""
        dist = export('1.0 0.1 BirthDeath "tree" ~').random_variables()["tree"]["distribution"]
        assert dist["type"] == "BirthDeath"
        assert dist["generates"] == "Tree"
        assert dist["parameters"] == {"birthRate": 1.0, "deathRate": 0.1}

    def test_observed_scalar(self):
        """Observed data is attached as observedValue."""
        entry = export('1.0 0.5 Normal "x" ~ 1.2 "x" observe').random_variables()["x"]
        assert entry["observedValue"] == 1.2

    def test_definition_order(self):
        """Variables keep the order they were bound in."""
        source = '1.0 Exponential "b" ~ 1.0 Exponential "a" ~'
        assert list(export(source).random_variables()) == ["b", "a"]


class TestPhylogeneticModel:
    """Test a complete HKY model."""

    def test_phylo_ctmc(self):
        """The alignment references the tree and the Q matrix."""
        dist = export(HKY_MODEL).random_variables()["aln"]["distribution"]
        assert dist["type"] == "PhyloCTMC"
        assert dist["generates"] == "Alignment"
        assert dist["parameters"] == {"tree": {"variable": "tree"}, "Q": {"variable": "Q"}}

    def test_alignment_observed_data(self):
        """An array of sequences becomes a taxon map."""
        entry = export(HKY_MODEL).random_variables()["aln"]
        assert entry["observedValue"] == {"human": "ACGT", "chimp": "ACGA"}

    def test_hky_function(self):
        """Deterministic models become functions with named arguments."""
        fn = export(HKY_MODEL).deterministic_functions()["Q"]
        assert fn == {
            "function": "hky",
            "arguments": {"kappa": 2.0, "frequencies": [0.25, 0.25, 0.25, 0.25]},
        }

    def test_gtr_function(self):
        """GTR exports rates and frequencies."""
        source = '[ 1 2 1 1 2 1 ] [ 0.1 0.2 0.3 0.4 ] GTR "Q" ='
        fn = export(source).deterministic_functions()["Q"]
        assert fn["function"] == "gtr"
        assert fn["arguments"]["rates"] == [1, 2, 1, 1, 2, 1]

    def test_site_rates(self):
        """A discrete gamma site-rate parameter is exported inline."""
        source = HKY_MODEL.replace(
            '"Q" var PhyloCTMC', '"Q" var 0.5 4 DiscreteGamma PhyloCTMC')
        params = export(source).random_variables()["aln"]["distribution"]["parameters"]
        assert params["siteRates"]["type"] == "DiscreteGamma"
        assert params["siteRates"]["parameters"] == {"shape": 0.5, "categories": 4}


class TestDeterministicFunctions:
    """Test deterministic variable conversion."""

    def test_primitive_value(self):
        """Deterministic literals export as values."""
        fns = export('5 "n" = "ACGT" "s" =').deterministic_functions()
        assert fns == {"n": {"value": 5}, "s": {"value": "ACGT"}}

    def test_unrepresentable_values_omitted(self):
        """A deterministic distribution has no function form."""
        fns = export('1.0 Exponential "d" =').deterministic_functions()
        assert fns == {}


class TestSerialization:
    """Test JSON and YAML output."""

    def test_to_json(self):
        """JSON output parses back to the same document."""
        exporter = export(HKY_MODEL)
        assert json.loads(exporter.to_json()) == exporter.to_dict()

    def test_to_yaml_keeps_order(self):
        """YAML output parses back and keeps key order."""
        exporter = export(HKY_MODEL)
        loaded = yaml.safe_load(exporter.to_yaml())
        assert loaded == exporter.to_dict()
        assert list(loaded) == list(exporter.to_dict())

    def test_write_json(self, tmp_path):
        """write() picks JSON from the suffix."""
        path = export(HKY_MODEL).write(tmp_path / "model.json")
        text = path.read_text(encoding="utf-8")
        assert text.endswith("\n")
        assert json.loads(text)["randomVariables"]["aln"]["observedValue"]["human"] == "ACGT"

    def test_write_yaml(self, tmp_path):
        """write() picks YAML from .yaml and .yml."""
        for name in ("model.yaml", "model.yml"):
            path = export(HKY_MODEL).write(tmp_path / name)
            assert yaml.safe_load(path.read_text())["codephyVersion"] == CODEPHY_VERSION

    def test_explicit_format_wins(self, tmp_path):
        """An explicit format overrides the suffix."""
        path = export("").write(tmp_path / "model.out", fmt="yaml")
        assert yaml.safe_load(path.read_text())["model"]

    def test_creates_parent_directories(self, tmp_path):
        """Missing parent directories are created."""
        path = export("").write(tmp_path / "out" / "nested" / "model.json")
        assert path.exists()

    def test_unknown_format(self, tmp_path):
        """Unknown formats are rejected."""
        with pytest.raises(ValueError) as exc_info:
            export("").write(tmp_path / "model.json", fmt="xml")
        assert "xml" in str(exc_info.value)


class TestHelpers:
    """Test module-level helpers."""

    def test_default_output_path(self):
        """The script extension is replaced by the format's."""
        assert default_output_path("models/hky.sp").name == "hky.json"
        assert default_output_path("models/hky.sp", "yaml").name == "hky.yaml"

    @pytest.mark.parametrize("kind,expected", [
        (DistributionKind.NORMAL, "Real"),
        (DistributionKind.GAMMA, "Real"),
        (DistributionKind.YULE, "Tree"),
        (DistributionKind.COALESCENT, "Tree"),
        (DistributionKind.PHYLO_CTMC, "Alignment"),
        (DistributionKind.DIRICHLET, "Vector"),
        (DistributionKind.DISCRETE_GAMMA_VECTOR, "Vector"),
    ])
    def test_generates(self, kind, expected):
        """Generated value type per distribution."""
        assert generates(kind) == expected

    def test_phylospec_type(self):
        """Internal tags map to PhyloSpec names."""
        assert phylospec_type(DistributionKind.LOGNORMAL) == "LogNormal"
        assert phylospec_type(DistributionKind.PHYLO_CTMC) == "PhyloCTMC"
