# storefront/domain/owner.py
"""
Cart ownership.

A cart partition belongs either to a signed-in customer or to a guest
identified by ip address, never both. Modelling it as a union means the
repository can only ever build one of the two filters.
"""
from dataclasses import dataclass
from typing import Any, Dict, Union


@dataclass(frozen=True)
class Customer:
    customer_id: int

    def as_columns(self) -> Dict[str, Any]:
        return {"customer_id": self.customer_id, "ip_address": ""}

    def identity(self) -> Dict[str, Any]:
        return {"customer_id": self.customer_id, "ip_address": None}

    def describe(self) -> str:
        return f"customer {self.customer_id}"


@dataclass(frozen=True)
class Guest:
    ip_address: str

    def as_columns(self) -> Dict[str, Any]:
        return {"customer_id": None, "ip_address": self.ip_address}

    def identity(self) -> Dict[str, Any]:
        return {"customer_id": None, "ip_address": self.ip_address}

    def describe(self) -> str:
        return f"guest {self.ip_address}"


Owner = Union[Customer, Guest]
