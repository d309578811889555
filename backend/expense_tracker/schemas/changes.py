"""
Expense Tracker Backend — Partial Update Values
================================================

What:  Typed change sets for the two updatable records (users, expenses).
How:   Every attribute is either a concrete value or the `UNSET` sentinel.
       `None` is a real value ("clear this column"), distinct from `UNSET`
       ("leave this column alone").

Example:
    ExpenseChanges(amount=Decimal("9.99"))             # only amount changes
    ExpenseChanges(description=None)                   # clears description
    ExpenseChanges().provided()                        # {} → nothing to update
"""

from dataclasses import dataclass, fields, replace
import datetime as dt
from decimal import Decimal
from typing import Any, Dict, Optional, Union


class _Unset:
    """Marker type for an attribute that was not supplied."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNSET"


UNSET = _Unset()


@dataclass(frozen=True)
class AssetRef:
    """Reference to a file stored on the external image host."""

    url: str
    public_id: str


class _Changes:
    def provided(self) -> Dict[str, Any]:
        """Attributes that were supplied, by name."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)  # type: ignore[arg-type]
            if getattr(self, f.name) is not UNSET
        }

    def is_empty(self) -> bool:
        return not self.provided()

    def with_values(self, **values: Any):
        return replace(self, **values)  # type: ignore[type-var]


@dataclass(frozen=True)
class UserChanges(_Changes):
    name: Union[str, _Unset] = UNSET
    avatar: Union[AssetRef, _Unset] = UNSET


@dataclass(frozen=True)
class ExpenseChanges(_Changes):
    amount: Union[Decimal, _Unset] = UNSET
    category: Union[str, _Unset] = UNSET
    description: Union[Optional[str], _Unset] = UNSET
    date: Union[dt.date, _Unset] = UNSET
    receipt: Union[AssetRef, _Unset] = UNSET
