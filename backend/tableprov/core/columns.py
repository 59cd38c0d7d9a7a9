from __future__ import annotations
from typing import List, Sequence

from tableprov.common.config_models import BatchOptions
from tableprov.plugins.api import ColumnInfo, ColumnSpec

__all__ = ["plan_columns"]


def plan_columns(columns: Sequence[ColumnInfo], options: BatchOptions) -> List[ColumnSpec]:
    """
    Turn a source schema into the column list used to create the destination.

    Text columns longer than `widen_threshold` bytes become variable width when
    `widen_text` is on; other text columns keep a fixed width equal to their
    byte length. Labels are kept only with `preserve_labels`; names are
    lowercased with `lowercase_columns`. Format and column order carry over.
    """
    specs: List[ColumnSpec] = []
    for col in columns:
        name = col.name.lower() if options.lowercase_columns else col.name
        label = col.label if options.preserve_labels else None

        if not col.is_text:
            specs.append(ColumnSpec(name=name, type=col.type, source=col.name,
                                    format=col.format, label=label))
            continue

        length = col.byte_length
        widen = options.widen_text and length is not None and length > options.widen_threshold
        if widen or not length:
            specs.append(ColumnSpec(name=name, type="varchar", source=col.name, format=col.format, label=label))
        else:
            specs.append(ColumnSpec(name=name, type="char", length=length, source=col.name,
                                    format=col.format, label=label))
    seen = set()
    for spec in specs:
        if spec.name.lower() in seen:
            raise ValueError(f"duplicate column name {spec.name!r} after case normalization")
        seen.add(spec.name.lower())
    return specs
