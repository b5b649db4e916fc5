"""
Purpose: Typed preference aggregate (likes/dislikes per place category).
What it does:
- PreferenceInsight: vote and like counts for one user and one category,
  plus a tally per (attribute key, attribute value) of the places voted on
- record_vote(): fold one vote in
- merge(): combine two aggregates of the same user and category
  (e.g. per-device or per-day partials)

Counts only; ratios are derived, never stored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from dispatch.exceptions import ValidationError

Attribute = Tuple[str, str]  # (key, value), e.g. ("cuisine", "thai")


@dataclass
class AttributeTally:
    count: int = 0
    like_count: int = 0

    @property
    def like_ratio(self) -> float:
        if self.count == 0:
            return 0.0
        return self.like_count / self.count

    def merged(self, other: AttributeTally) -> AttributeTally:
        return AttributeTally(self.count + other.count, self.like_count + other.like_count)


@dataclass
class PreferenceInsight:
    user_id: str
    category_id: str
    vote_count: int = 0
    like_count: int = 0
    attributes: Dict[str, Dict[str, AttributeTally]] = field(default_factory=dict)

    @property
    def like_ratio(self) -> float:
        if self.vote_count == 0:
            return 0.0
        return self.like_count / self.vote_count

    def record_vote(self, is_liked: bool, attributes: Iterable[Attribute] = ()) -> PreferenceInsight:
        self.vote_count += 1
        if is_liked:
            self.like_count += 1

        for key, value in attributes:
            tally = self.attributes.setdefault(key, {}).setdefault(value, AttributeTally())
            tally.count += 1
            if is_liked:
                tally.like_count += 1
        return self

    def merge(self, other: PreferenceInsight) -> PreferenceInsight:
        """
        New aggregate holding both sides' counts. Neither input is changed.
        """
        if (self.user_id, self.category_id) != (other.user_id, other.category_id):
            raise ValidationError("Only insights of the same user and category can be merged")

        attributes: Dict[str, Dict[str, AttributeTally]] = {}
        for source in (self.attributes, other.attributes):
            for key, values in source.items():
                bucket = attributes.setdefault(key, {})
                for value, tally in values.items():
                    bucket[value] = bucket[value].merged(tally) if value in bucket else AttributeTally(tally.count, tally.like_count)

        return PreferenceInsight(
            user_id=self.user_id,
            category_id=self.category_id,
            vote_count=self.vote_count + other.vote_count,
            like_count=self.like_count + other.like_count,
            attributes=attributes,
        )

    def tally(self, key: str, value: str) -> Optional[AttributeTally]:
        return self.attributes.get(key, {}).get(value)

    def preferred_values(self, key: str) -> List[str]:
        """
        Values seen for an attribute key, best liked first (ties: most votes first).
        """
        values = self.attributes.get(key, {})
        return sorted(values, key=lambda v: (-values[v].like_ratio, -values[v].count))


class PreferenceBook:
    """
    All insights, one per (user, category).
    """
    def __init__(self):
        self._insights: Dict[Tuple[str, str], PreferenceInsight] = {}

    def record_vote(self, user_id: str, category_id: str, is_liked: bool,
                    attributes: Iterable[Attribute] = ()) -> PreferenceInsight:
        insight = self._insights.get((user_id, category_id))
        if insight is None:
            insight = PreferenceInsight(user_id=user_id, category_id=category_id)
            self._insights[(user_id, category_id)] = insight
        return insight.record_vote(is_liked, attributes)

    def get(self, user_id: str, category_id: str) -> Optional[PreferenceInsight]:
        return self._insights.get((user_id, category_id))

    def for_user(self, user_id: str) -> List[PreferenceInsight]:
        """
        The user's categories, most liked first.
        """
        insights = [i for (uid, _), i in self._insights.items() if uid == user_id]
        return sorted(insights, key=lambda i: (-i.like_ratio, -i.vote_count))
