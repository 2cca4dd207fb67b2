"""
Aggregate an instant vector of request rates into per-destination counters.

Input samples carry the labels
  destination_service, destination_version, response_code
and a requests-per-minute value. Output is one ``EdgeCounters`` per destination
``ServiceIdentity``:

- samples without destination labels are dropped (logged);
- samples pointing back at the querying service (self-invocation) are dropped;
- status codes are bucketed by leading digit into 2xx/3xx/4xx/5xx; any other
  class is ignored and does not count toward ``total``;
- ``total`` is the sum of the four buckets.
"""
from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, Optional

import pandas as pd

from meshgraph.graph.tree import EdgeCounters, ServiceIdentity
from meshgraph.io.prometheus import Sample

log = logging.getLogger(__name__)

BUCKETS = ("2xx", "3xx", "4xx", "5xx")


def status_bucket(code: object) -> Optional[str]:
    s = str(code or "").strip()
    if s and s[0] in "2345":
        return f"{s[0]}xx"
    return None


def aggregate(samples: Iterable[Sample],
              exclude: Optional[ServiceIdentity] = None) -> Dict[ServiceIdentity, EdgeCounters]:
    rows = []
    for s in samples:
        labels = s.labels
        name = labels.get("destination_service")
        version = labels.get("destination_version")
        if not name or not version:
            log.warning("skipping %s, missing destination labels", labels)
            continue
        dest = ServiceIdentity(name, version)
        # not expected, but never represent self-invocation as an edge
        if dest == exclude:
            continue
        bucket = status_bucket(labels.get("response_code"))
        if bucket is None:
            log.debug("ignoring %s: response_code %r outside 2xx-5xx", dest, labels.get("response_code"))
            continue
        value = float(s.value)
        if math.isnan(value) or value < 0:
            log.warning("skipping %s: invalid rate %r", dest, s.value)
            continue
        rows.append({"name": name, "version": version, "bucket": bucket, "value": value})

    if not rows:
        return {}

    df = pd.DataFrame.from_records(rows)
    table = (
        df.pivot_table(index=["name", "version"], columns="bucket", values="value",
                       aggfunc="sum", fill_value=0.0)
        .reindex(columns=list(BUCKETS), fill_value=0.0)
        .sort_index()
    )

    out: Dict[ServiceIdentity, EdgeCounters] = {}
    for (name, version), r in table.iterrows():
        out[ServiceIdentity(str(name), str(version))] = EdgeCounters.from_buckets(
            rate_2xx=float(r["2xx"]),
            rate_3xx=float(r["3xx"]),
            rate_4xx=float(r["4xx"]),
            rate_5xx=float(r["5xx"]),
        )
    return out
