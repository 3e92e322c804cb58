from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from flowtracer.core.dto import AddressLabel


class LabelPort(ABC):
    @abstractmethod
    def get_labels(self, addresses: List[str]) -> List[AddressLabel]:
        """At most 100 addresses per call. Addresses without a label may be omitted."""
        raise NotImplementedError
