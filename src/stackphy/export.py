"""CodePhy export of a model graph."""

from __future__ import annotations

import datetime as _dt
import json
from pathlib import Path
from typing import Any, Dict, Optional

from . import __version__ as _stackphy_version
from .runtime.environment import Environment
from .runtime.values import (
    StackItem, Primitive, Variable, Distribution, DistributionKind,
    Model, ModelKind, Sequence, TREE_DISTRIBUTIONS, DISCRETE_GAMMA_KINDS,
)

CODEPHY_VERSION = "0.1"
MODEL_NAME = "StackPhy Export"
DEFAULT_TITLE = "Model exported from StackPhy"
DEFAULT_DESCRIPTION = "This model was automatically exported from a StackPhy script."
SOFTWARE_URL = "https://github.com/yourusername/stackphy"

EXPORT_FORMATS = ("json", "yaml")

# Internal distribution tags to PhyloSpec type names
PHYLOSPEC_TYPES: Dict[DistributionKind, str] = {
    DistributionKind.NORMAL: "Normal",
    DistributionKind.LOGNORMAL: "LogNormal",
    DistributionKind.EXPONENTIAL: "Exponential",
    DistributionKind.GAMMA: "Gamma",
    DistributionKind.DIRICHLET: "Dirichlet",
    DistributionKind.YULE: "Yule",
    DistributionKind.BIRTH_DEATH: "BirthDeath",
    DistributionKind.COALESCENT: "Coalescent",
    DistributionKind.PHYLO_CTMC: "PhyloCTMC",
    DistributionKind.DISCRETE_GAMMA: "DiscreteGamma",
    DistributionKind.DISCRETE_GAMMA_VECTOR: "DiscreteGammaVector",
}


def _now_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat()


def phylospec_type(kind: DistributionKind) -> str:
    name = kind.value
    return PHYLOSPEC_TYPES.get(kind, name[:1].upper() + name[1:])


def generates(kind: DistributionKind) -> str:
    """The value type a distribution generates."""
    if kind == DistributionKind.PHYLO_CTMC:
        return "Alignment"
    if kind in TREE_DISTRIBUTIONS:
        return "Tree"
    if kind == DistributionKind.DIRICHLET or kind in DISCRETE_GAMMA_KINDS:
        return "Vector"
    return "Real"


def _convert_raw(value: Any) -> Any:
    if isinstance(value, StackItem):
        return _convert_item(value)
    if isinstance(value, list):
        return [_convert_raw(v) for v in value]
    return value


def _convert_item(item: Any) -> Any:
    """Convert a parameter or nested stack item to a JSON-compatible value."""
    if isinstance(item, Variable):
        return {"variable": item.name}
    if isinstance(item, Primitive):
        return _convert_raw(item.raw)
    if isinstance(item, Model):
        return _convert_model(item)
    if isinstance(item, Distribution):
        return _convert_distribution(item)
    if isinstance(item, Sequence):
        return {item.taxon: item.residues}
    return str(item)


def _convert_model(model: Model) -> Dict[str, Any]:
    function = "hky" if model.kind == ModelKind.HKY else "gtr"
    arguments = {name: _convert_item(p) for name, p in zip(model.parameter_names, model.parameters)}
    return {"function": function, "arguments": arguments}


def _convert_distribution(dist: Distribution) -> Dict[str, Any]:
    parameters: Dict[str, Any] = {}
    for name, param in dist.named_parameters().items():
        if dist.kind == DistributionKind.DIRICHLET and isinstance(param, Primitive) and param.is_array():
            # concentrations are always reals
            parameters[name] = [float(a) for a in param.raw]
        else:
            parameters[name] = _convert_item(param)
    return {
        "type": phylospec_type(dist.kind),
        "generates": generates(dist.kind),
        "parameters": parameters,
    }


def _convert_observed(data: StackItem) -> Any:
    """Arrays of sequences become a taxon -> residues alignment."""
    if isinstance(data, Primitive) and data.is_array() and data.raw and isinstance(data.raw[0], Sequence):
        return {seq.taxon: seq.residues for seq in data.raw if isinstance(seq, Sequence)}
    return _convert_item(data)


def _convert_deterministic(value: StackItem) -> Optional[Dict[str, Any]]:
    if isinstance(value, Model):
        return _convert_model(value)
    if isinstance(value, Primitive):
        return {"value": _convert_item(value)}
    return None


class CodePhyExporter:
    """
    Builds a CodePhy document from the variables of an Environment.

    Stochastic variables become `randomVariables` entries and
    deterministic ones `deterministicFunctions` entries, both in
    definition order. Deterministic values with no CodePhy form (for
    example a bare distribution) are omitted.
    """

    def __init__(self, environment: Environment, title: Optional[str] = None,
                 description: Optional[str] = None, timestamp: Optional[str] = None):
        self.environment = environment
        self.title = title or DEFAULT_TITLE
        self.description = description or DEFAULT_DESCRIPTION
        self.timestamp = timestamp

    def _metadata(self) -> Dict[str, Any]:
        timestamp = self.timestamp or _now_iso()
        return {
            "title": self.title,
            "description": self.description,
            "created": timestamp,
            "modified": timestamp,
            "software": {
                "name": "StackPhy",
                "version": _stackphy_version,
                "url": SOFTWARE_URL,
            },
        }

    def random_variables(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for name, variable in self.environment.stochastic_variables().items():
            entry: Dict[str, Any] = {"distribution": _convert_distribution(variable.distribution)}
            if variable.has_observed_data:
                entry["observedValue"] = _convert_observed(variable.observed)
            result[name] = entry
        return result

    def deterministic_functions(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for name, variable in self.environment.deterministic_variables().items():
            converted = _convert_deterministic(variable.underlying)
            if converted is not None:
                result[name] = converted
        return result

    def to_dict(self) -> Dict[str, Any]:
        return {
            "codephyVersion": CODEPHY_VERSION,
            "model": MODEL_NAME,
            "metadata": self._metadata(),
            "randomVariables": self.random_variables(),
            "deterministicFunctions": self.deterministic_functions(),
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    def to_yaml(self) -> str:
        import yaml

        return yaml.safe_dump(self.to_dict(), sort_keys=False, allow_unicode=True)

    def write(self, path: Path | str, fmt: Optional[str] = None) -> Path:
        """
        Write the document to path.

        The format is taken from fmt when given, otherwise from the file
        suffix: YAML for .yaml/.yml and JSON for everything else.
        """
        target = Path(path)
        if fmt is None:
            fmt = "yaml" if target.suffix.lower() in (".yaml", ".yml") else "json"
        if fmt not in EXPORT_FORMATS:
            raise ValueError(f"unknown export format '{fmt}' (expected one of {', '.join(EXPORT_FORMATS)})")
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("w", encoding="utf-8") as fp:
            if fmt == "yaml":
                import yaml

                yaml.safe_dump(self.to_dict(), fp, sort_keys=False, allow_unicode=True)
            else:
                json.dump(self.to_dict(), fp, indent=2, ensure_ascii=False)
                fp.write("\n")
        return target


def default_output_path(source_path: Path | str, fmt: str = "json") -> Path:
    """The input path with its extension replaced by the export format's."""
    return Path(source_path).with_suffix(".yaml" if fmt == "yaml" else ".json")
