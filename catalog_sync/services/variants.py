# catalog_sync/services/variants.py
from typing import Optional

from ..models import VariantMapping
from ..stores import Store
from ..utils.logger import warn

MIRRORED = (
    "price", "compare_at_price", "inventory_policy", "fulfillment_service", "inventory_management",
    "option1", "option2", "option3", "position", "weight", "weight_unit", "requires_shipping", "taxable",
)


def _opt_key(v: dict) -> Optional[tuple]:
    key = (v.get("option1"), v.get("option2"), v.get("option3"))
    return key if any(key) else None


def _str(value) -> Optional[str]:
    return None if value is None or value == "" else str(value)


def pair_variants(source: list[dict], target: list[dict]) -> list[tuple[dict, Optional[dict]]]:
    """
    Match target variants back to source variants: same SKU first, then the
    same option values, then list position among whatever is left.
    """
    free = list(range(len(target)))
    matched: list[Optional[int]] = [None] * len(source)

    def take(i: int, j: int):
        matched[i] = j
        free.remove(j)

    for i, sv in enumerate(source):
        sku = sv.get("sku")
        if not sku:
            continue
        for j in free:
            if target[j].get("sku") == sku:
                take(i, j)
                break

    for i, sv in enumerate(source):
        key = _opt_key(sv)
        if matched[i] is not None or key is None:
            continue
        for j in free:
            if _opt_key(target[j]) == key:
                take(i, j)
                break

    for i in range(len(source)):
        if matched[i] is not None or not free:
            continue
        take(i, i if i in free else free[0])

    return [(sv, target[j] if j is not None else None) for sv, j in zip(source, matched)]


def build_mapping(src: dict, tgt: Optional[dict], source_store: Store,
                  base: Optional[VariantMapping] = None) -> VariantMapping:
    """
    Fold one source variant (and its paired target variant, if any) into a
    VariantMapping. Target-side fields already on ``base`` survive when the
    target variant does not carry them.
    """
    target_store = source_store.other
    m = VariantMapping(**base.to_dict()) if base else VariantMapping(sku=src.get("sku") or "")
    m.sku = src.get("sku") or m.sku
    for f in MIRRORED:
        if f in src:
            setattr(m, f, src.get(f))

    setattr(m, source_store.id_field, _str(src.get("id")) or m.id_for(source_store))
    setattr(m, source_store.inventory_item_field,
            _str(src.get("inventory_item_id")) or m.inventory_item_for(source_store))
    m.set_quantity(source_store, src.get("inventory_quantity") or 0)

    tgt = tgt or {}
    setattr(m, target_store.id_field, _str(tgt.get("id")) or m.id_for(target_store))
    setattr(m, target_store.inventory_item_field,
            _str(tgt.get("inventory_item_id")) or m.inventory_item_for(target_store))
    if tgt.get("inventory_quantity") is not None:
        m.set_quantity(target_store, tgt["inventory_quantity"])

    if not m.sku:
        warn(f"[variants] {source_store} variant {src.get('id')} has no SKU; inventory will not sync")
    return m


def mappings_for_create(source_variants: list[dict], target_variants: list[dict],
                        source_store: Store) -> tuple[list[VariantMapping], list[tuple[dict, Optional[dict]]]]:
    pairs = pair_variants(source_variants, target_variants)
    return [build_mapping(s, t, source_store) for s, t in pairs], pairs


def merge_mappings(existing: list[VariantMapping], source_variants: list[dict],
                   target_variants: list[dict], source_store: Store) -> list[VariantMapping]:
    """
    Merge keyed by SKU (source variant id for SKU-less variants). Mappings
    that no longer appear in the source list are kept as they are.
    """
    merged = list(existing)

    def find(src: dict) -> Optional[int]:
        sku = src.get("sku")
        sid = _str(src.get("id"))
        for idx, m in enumerate(merged):
            if sku and m.sku == sku:
                return idx
            if not sku and sid and m.id_for(source_store) == sid:
                return idx
        return None

    for src, tgt in pair_variants(source_variants, target_variants):
        idx = find(src)
        if idx is None:
            merged.append(build_mapping(src, tgt, source_store))
        else:
            merged[idx] = build_mapping(src, tgt, source_store, base=merged[idx])
    return merged


def target_variant_payloads(payload_variants: list[dict], existing: list[VariantMapping],
                            target_store: Store) -> list[dict]:
    """Attach the known target variant id to each outgoing variant so an update edits in place."""
    by_sku = {m.sku: m for m in existing if m.sku}
    out = []
    for v in payload_variants:
        v = dict(v)
        m = by_sku.get(v.get("sku"))
        tid = m.id_for(target_store) if m else None
        if tid:
            v["id"] = int(tid) if tid.isdigit() else tid
        out.append(v)
    return out
