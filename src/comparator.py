"""Strict comparison of connector configuration maps."""

from typing import Mapping


def configs_equal(desired: Mapping[str, str], observed: Mapping[str, str]) -> bool:
    """
    Return True iff both maps have the same keys and identical string values.

    No coercion is applied: ``"1"`` and ``1`` differ, and a key defaulted
    by the Connect worker but absent from the desired map counts as drift.
    """
    if len(desired) != len(observed):
        return False
    for key, value in desired.items():
        if key not in observed:
            return False
        other = observed[key]
        if type(other) is not type(value) or other != value:
            return False
    return True
