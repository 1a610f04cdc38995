from typing import List

from secprobe.core.models import Payload, PayloadCategory


class PayloadFile:
    def __init__(self, filename: str, category: PayloadCategory = PayloadCategory.CUSTOM) -> None:
        """
        # one payload per line, UTF-8
        ' OR 1=1--
        <svg onload=alert(1)>
        """

        self.filename = filename
        self.category = category
        self.payloads: List[Payload] = []

    def parse(self) -> List[Payload]:

        with open(self.filename, 'r', encoding='utf-8') as f:
            raw = f.read()

        payloads = []
        for line in raw.splitlines():
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            payloads.append(Payload(self.category, line))

        self.payloads = payloads
        return payloads

    def __str__(self) -> str:
        return f"PayloadFile: {self.filename} ({self.category.value}, {len(self.payloads)} payloads)"


def load_payload_file(path: str, category: PayloadCategory = PayloadCategory.CUSTOM,
                      logger=None) -> List[Payload]:
    """Load user payloads; an unreadable file yields [] and a warning, never an error."""
    try:
        return PayloadFile(path, category).parse()
    except (OSError, UnicodeDecodeError) as e:
        if logger:
            logger.warn(f"Could not load payloads from {path}: {e}")
        return []
