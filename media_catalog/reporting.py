import csv
import logging
from collections import Counter
from pathlib import Path
from typing import Any, Dict

from .models import Snapshot


class CatalogReport:
    def __init__(self, snapshot: Snapshot):
        self.snapshot = snapshot

    def summary(self, top_tags: int = 10) -> Dict[str, Any]:
        """Counts by media type, total bytes, most common tags and attribute names."""
        type_counts: Counter = Counter()
        tag_counts: Counter = Counter()
        attribute_names = set()
        total_bytes = 0

        for rec in self.snapshot.media:
            type_counts[rec.media_type.value] += 1
            total_bytes += rec.filesize
            # Count each tag once per record
            tag_counts.update({tag.normalized for tag in rec.tags})
            attribute_names.update(rec.attributes)

        return {
            "version": self.snapshot.version,
            "generatedAt": self.snapshot.generated_at.isoformat(),
            "totalRecords": len(self.snapshot),
            "totalBytes": total_bytes,
            "mediaTypes": dict(sorted(type_counts.items())),
            "topTags": [
                {"tag": tag, "count": count}
                for tag, count in sorted(tag_counts.items(), key=lambda kv: (-kv[1], kv[0]))[:top_tags]
            ],
            "attributeNames": sorted(attribute_names),
        }

    def write_csv(self, output_csv: Path) -> int:
        """One row per record, in catalog order. Returns the row count."""
        headers = ["Id", "Relative Path", "Media Type", "Size (bytes)", "Tags", "Attributes"]

        logging.info(f"Writing catalog report -> {output_csv}")
        with open(output_csv, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(headers)
            for rec in self.snapshot.media:
                writer.writerow([
                    rec.id,
                    rec.relative_path,
                    rec.media_type.value,
                    rec.filesize,
                    " ".join(tag.normalized for tag in rec.tags),
                    ";".join(f"{k}={v}" for k, v in sorted(rec.attributes.items())),
                ])

        logging.info(f"Report complete. Wrote {len(self.snapshot)} rows.")
        return len(self.snapshot)
