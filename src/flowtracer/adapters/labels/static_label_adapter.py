from flowtracer.core.dto import AddressLabel
from flowtracer.ports.label_port import LabelPort
from typing import Dict, Optional


class StaticLabelAdapter(LabelPort):
    def __init__(self, labels: Optional[Dict[str, AddressLabel]] = None, fail: bool = False):
        self._labels = labels or {}
        self._fail = fail
        self.calls = 0

    def get_labels(self, addresses):
        self.calls += 1
        if self._fail:
            raise ConnectionError("static labels: service down")
        return [self._labels[a] for a in addresses[:100] if a in self._labels]
