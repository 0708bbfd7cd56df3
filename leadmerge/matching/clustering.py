"""
Similar-name clustering strategies.

The scanner only depends on :class:`NameClusterer`, so the greedy pairwise
pass can be replaced by a blocked one without changing the grouping contract.
"""

import re
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict, List, Optional

import phonetics

from ..core.lead import Lead
from ..errors import ScanTimeout
from ..utils.normalizer import full_name_key, name_similarity


class NameClusterer(ABC):
    """Partitions leads into clusters of similar names."""

    def __init__(self, threshold: float = 0.80):
        self.threshold = threshold

    @abstractmethod
    def cluster(
        self,
        leads: List[Lead],
        timeout: Optional[float] = None
    ) -> List[List[Lead]]:
        """
        Return clusters of two or more leads, in input order.

        Raises:
            ScanTimeout: ``timeout`` seconds elapsed before completion
        """


class GreedyNameClusterer(NameClusterer):
    """
    Single-pass greedy clustering.

    Each unclustered lead is compared with every later unclustered lead;
    any scoring at or above the threshold joins its cluster. Comparisons
    are against the cluster's first lead only, so clustering is not
    transitive. O(n^2) comparisons for n leads.
    """

    def cluster(
        self,
        leads: List[Lead],
        timeout: Optional[float] = None
    ) -> List[List[Lead]]:
        deadline = time.monotonic() + timeout if timeout is not None else None
        keys = [full_name_key(lead.first_name, lead.last_name) for lead in leads]
        processed = set()
        clusters = []

        for i, lead in enumerate(leads):
            if deadline is not None and time.monotonic() > deadline:
                raise ScanTimeout(timeout, i)
            if i in processed:
                continue

            similar = [lead]
            for j in range(i + 1, len(leads)):
                if j in processed:
                    continue
                if name_similarity(keys[i], keys[j]) >= self.threshold:
                    similar.append(leads[j])
                    processed.add(j)

            if len(similar) > 1:
                clusters.append(similar)
                processed.add(i)

        return clusters


class PhoneticBlockingClusterer(NameClusterer):
    """
    Greedy clustering within Metaphone buckets of the last name.

    Only leads whose last names sound alike are compared, which trades a
    little recall (typos that change the sound) for far fewer comparisons.
    """

    def __init__(self, threshold: float = 0.80):
        super().__init__(threshold)
        self._greedy = GreedyNameClusterer(threshold)

    @staticmethod
    def block_key(lead: Lead) -> str:
        """Metaphone code of the lead's last name."""
        surname = re.sub(r'[^a-z]', '', (lead.last_name or '').lower())
        if not surname:
            return ''
        return phonetics.metaphone(surname)

    def cluster(
        self,
        leads: List[Lead],
        timeout: Optional[float] = None
    ) -> List[List[Lead]]:
        deadline = time.monotonic() + timeout if timeout is not None else None
        position = {lead.id: i for i, lead in enumerate(leads)}

        blocks: Dict[str, List[Lead]] = defaultdict(list)
        for lead in leads:
            blocks[self.block_key(lead)].append(lead)

        clusters = []
        for block in blocks.values():
            if len(block) < 2:
                continue
            remaining = None
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise ScanTimeout(timeout, len(clusters))
            clusters.extend(self._greedy.cluster(block, timeout=remaining))

        clusters.sort(key=lambda members: position[members[0].id])
        return clusters
