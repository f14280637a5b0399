"""
Client cart with pluggable persistence.

The storefront keeps the cart in browser storage; here that storage is a
CartPersistence port so the cart logic runs the same against a JSON file,
memory, or anything else that can load and save a list of items.
"""
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List, Mapping, Union

from pydantic import ValidationError

from lashdesk.lib.logging import get_logger
from lashdesk.schemas.cart import (
    GuideScenario,
    MonthlyItem,
    OneTimeItem,
    ServiceOffering,
    YearlyItem,
    line_items_adapter,
)
from lashdesk.services.cart_pricing import first_payment_for_item


logger = get_logger(__name__)

LineItem = Union[OneTimeItem, YearlyItem, MonthlyItem]


class CartPersistence(ABC):
    """Storage port for a single cart."""

    @abstractmethod
    def load(self) -> List[LineItem]:
        pass

    @abstractmethod
    def save(self, items: List[LineItem]) -> None:
        pass


class InMemoryCartPersistence(CartPersistence):
    def __init__(self, items: Iterable[LineItem] = ()):
        self._items: List[LineItem] = list(items)

    def load(self) -> List[LineItem]:
        return list(self._items)

    def save(self, items: List[LineItem]) -> None:
        self._items = list(items)


class JsonFileCartPersistence(CartPersistence):
    """
    Cart stored as a JSON array, like the storefront's ``labs-cart`` key.

    A missing or unreadable file loads as an empty cart.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> List[LineItem]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            return list(line_items_adapter.validate_python(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Error loading cart from {self.path}: {e}")
            return []

    def save(self, items: List[LineItem]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = line_items_adapter.dump_python(items, mode="json")
        self.path.write_text(json.dumps(payload), encoding="utf-8")


class CartStore:
    """
    Cart operations over a persistence port.

    Every mutation is saved immediately. ``prevalidated`` is set when the
    cart is filled from a guided scenario and cleared as soon as the client
    removes something or replaces the cart.
    """

    def __init__(self, persistence: CartPersistence):
        self.persistence = persistence
        self.items: List[LineItem] = persistence.load()
        self.prevalidated = False

    def _commit(self, items: List[LineItem]) -> None:
        self.items = items
        self.persistence.save(items)

    def add(self, item: LineItem) -> None:
        """Add one unit; adding a product already in the cart bumps its quantity."""
        for index, existing in enumerate(self.items):
            if existing.product_id == item.product_id:
                updated = existing.model_copy(update={"quantity": existing.quantity + 1})
                self._commit([*self.items[:index], updated, *self.items[index + 1:]])
                return
        self._commit([*self.items, item.model_copy(update={"quantity": 1})])

    def remove(self, product_id: str) -> None:
        self.prevalidated = False
        self._commit([i for i in self.items if i.product_id != product_id])

    def update_quantity(self, product_id: str, quantity: int) -> None:
        if quantity <= 0:
            self.remove(product_id)
            return
        self._commit([
            i.model_copy(update={"quantity": quantity}) if i.product_id == product_id else i
            for i in self.items
        ])

    def clear(self) -> None:
        self.prevalidated = False
        self._commit([])

    def restore(self, items: Iterable[LineItem]) -> None:
        """Replace the cart wholesale (e.g. restoring an abandoned order)."""
        self.prevalidated = False
        self._commit(list(items))

    def add_scenario(self, scenario: GuideScenario, catalog: Mapping[str, ServiceOffering]) -> List[str]:
        """
        Guided "add all": put every must-have service of the scenario in the cart.

        Returns:
            Ids of the services that were added (ones already present are skipped)

        Raises:
            KeyError: the scenario names a service the catalog doesn't have
        """
        in_cart = {i.product_id for i in self.items}
        added: List[LineItem] = []
        for service_id in scenario.must_have_service_ids:
            if service_id in in_cart:
                continue
            added.append(catalog[service_id].to_line_item())
            in_cart.add(service_id)

        self._commit([*self.items, *added])
        self.prevalidated = True
        logger.info(
            "Guide scenario added to cart",
            extra={"scenario_id": scenario.id, "added": [i.product_id for i in added]},
        )
        return [i.product_id for i in added]

    def total_items(self) -> int:
        return sum(i.quantity for i in self.items)

    def total_price(self) -> float:
        """Running cart total shown in the header, setup fees included."""
        return sum(first_payment_for_item(i) * i.quantity for i in self.items)
