"""
Labs service catalog.

The catalog file is a JSON object with ``products`` (service offerings) and
``scenarios`` (guided bundles), in the same shape the admin screen saves.
"""
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import TypeAdapter

from lashdesk.lib.logging import get_logger
from lashdesk.lib.settings import settings
from lashdesk.schemas.cart import GuideScenario, ServiceOffering


logger = get_logger(__name__)

_offerings_adapter = TypeAdapter(List[ServiceOffering])
_scenarios_adapter = TypeAdapter(List[GuideScenario])


@dataclass
class ServiceCatalog:
    offerings: Dict[str, ServiceOffering] = field(default_factory=dict)
    scenarios: Dict[str, GuideScenario] = field(default_factory=dict)

    def scenario(self, scenario_id: str) -> Optional[GuideScenario]:
        return self.scenarios.get(scenario_id)

    def ordered_scenarios(self) -> List[GuideScenario]:
        return sorted(self.scenarios.values(), key=lambda s: s.order)


def load_catalog(path: Union[str, Path]) -> ServiceCatalog:
    """
    Read a catalog file.

    Raises:
        FileNotFoundError: path doesn't exist
        ValueError: file isn't valid JSON or doesn't match the catalog shape
    """
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    offerings = _offerings_adapter.validate_python(raw.get("products", []))
    scenarios = _scenarios_adapter.validate_python(raw.get("scenarios", []))
    logger.info(
        "Labs catalog loaded",
        extra={"path": str(path), "products": len(offerings), "scenarios": len(scenarios)},
    )
    return ServiceCatalog(
        offerings={o.id: o for o in offerings},
        scenarios={s.id: s for s in scenarios},
    )


_catalog: Optional[ServiceCatalog] = None


def get_catalog() -> ServiceCatalog:
    """Process-wide catalog, read from ``labs_catalog_path`` on first use (empty when unset)."""
    global _catalog
    if _catalog is None:
        if settings.labs_catalog_path:
            _catalog = load_catalog(settings.labs_catalog_path)
        else:
            _catalog = ServiceCatalog()
    return _catalog


def set_catalog(catalog: Optional[ServiceCatalog]) -> None:
    """Replace the process-wide catalog (None re-reads it on next use)."""
    global _catalog
    _catalog = catalog
