"""Fold pod contexts into one scan record per distinct image."""

import logging
from collections.abc import Iterable

from kubeforge.services.session_state import PodContext, ScanRecord

logger = logging.getLogger(__name__)


def build_scan_records(targets: Iterable[tuple[str, PodContext]]) -> dict[str, ScanRecord]:
    """
    Group container contexts by image reference.

    The first occurrence of an image creates its record (and scan identifier);
    later occurrences only append their context.
    """
    records: dict[str, ScanRecord] = {}

    for image, context in targets:
        record = records.get(image)
        if record is None:
            records[image] = ScanRecord(image=image, contexts=[context])
        else:
            record.contexts.append(context)

    logger.info(f"Total {len(records)} unique images to scan")
    return records
