"""Eligibility registry — which jurors may sit on rooms of a category.

The registry is the source of truth for who can be drawn onto a jury.
It is keyed by category tag; each category holds an ordered set of
juror addresses (registration order is preserved so selection over the
pool is reproducible).
"""

from __future__ import annotations

from arbiter.errors import DuplicateError, NotFoundError, OutOfRangeError


class EligibilityRegistry:
    """Category → eligible juror addresses.

    Thread-safety: this class is not thread-safe. The caller must
    synchronise access if used from multiple threads.
    """

    def __init__(self) -> None:
        self._categories: dict[str, dict[str, None]] = {}

    def add(self, category: str, juror: str) -> None:
        """Register a juror for a category.

        Raises OutOfRangeError for blank values, DuplicateError if the
        juror is already registered for the category.
        """
        cat = category.strip()
        canonical = juror.strip()
        if not cat or not canonical:
            raise OutOfRangeError("Category and juror address must be non-blank")
        members = self._categories.setdefault(cat, {})
        if canonical in members:
            raise DuplicateError(f"{canonical} already eligible for {cat}")
        members[canonical] = None

    def remove(self, category: str, juror: str) -> None:
        """Remove a juror from a category."""
        members = self._categories.get(category.strip(), {})
        if juror.strip() not in members:
            raise NotFoundError(f"{juror} is not eligible for {category}")
        del members[juror.strip()]

    def eligible_jurors(self, category: str) -> list[str]:
        """Eligible jurors for a category, in registration order."""
        return list(self._categories.get(category.strip(), {}))

    def count(self, category: str) -> int:
        return len(self._categories.get(category.strip(), {}))

    def is_eligible(self, category: str, juror: str) -> bool:
        return juror in self._categories.get(category.strip(), {})

    def categories(self) -> list[str]:
        return sorted(self._categories)
