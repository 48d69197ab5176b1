"""Equipment search synonyms.

Maps the words crews actually type to keywords that appear in equipment
names and SKUs, grouped by work category.
"""
import re

AERIAL = {
    "strand": ["ehs", "guy wire", "messenger", "1/4"],
    "messenger": ["strand", "ehs", "messenger wire"],
    "lashing": ["wire", "lashing wire", "strand"],
    "lashing wire": ["lashing", "wire", ".045"],
    "guy wire": ["strand", "ehs", "anchor", "down guy"],
    "guy": ["strand", "anchor", "deadend", "thimble"],
    "anchor": ["guy", "screw anchor", "rod", "helix"],
    "deadend": ["guy", "grip", "strandvise", "dead end", "dead-end"],
    "bolt": ["machine bolt", "thimble eye", "lag bolt", "eye bolt"],
    "machine bolt": ["bolt, machine", "bolt machine"],
    "eye bolt": ["thimble eye", "bolt, thimble"],
    "lag bolt": ["lag screw", "lag bolts"],
    "nut": ["square nut", "thimble eye nut"],
    "washer": ["washer, square", "washer square", "square washer"],
    "clamp": ["b clamp", "d clamp", "k1", "suspension", "lashing", "cable"],
    "b clamp": ["suspension", "clamp", "3 hole"],
    "d clamp": ["lashing", "clamp", "bug nut"],
    "hook": ["guy hook", "b hook", "drive hook", "p hook", "rams head"],
    "p hook": ["drop wire", "hook", "3-3/4"],
    "strap": ["lashing", "support", "stainless"],
    "spacer": ["lashing", "1/2", "stackable"],
    "standoff": ["bracket", "diamond", "v-style", "pole mount"],
}

UNDERGROUND = {
    "conduit": ["duct", "hdpe", "pipe", "innerduct"],
    "duct": ["conduit", "innerduct", "hdpe"],
    "handhole": ["vault", "pull box", "hh", "box"],
    "vault": ["handhole", "pull box", "box"],
    "ped": ["pedestal", "cabinet"],
    "pedestal": ["ped", "cabinet", "enclosure"],
    "tracer": ["tracer wire", "locate", "copper clad"],
    "pull tape": ["tape", "1800", "pulling"],
    "coupler": ["coupling", "duct", "conduit"],
}

INSTALLING = {
    "ont": ["onu", "optical network", "gp1100", "calix"],
    "onu": ["ont", "optical network", "ufiber"],
    "calix": ["ont", "gp1100", "gp4200", "gigaspire", "e7"],
    "nid": ["network interface", "demarc", "box"],
    "demarc": ["demarcation", "nid"],
    "drop": ["drop cable", "flat drop", "preterm", "fiber drop"],
    "preterm drop": ["drop", "preterminated", "pre term"],
    "wall plate": ["faceplate", "port", "rj45", "keystone", "gang"],
    "keystone jack": ["keystone", "cat5", "cat6", "rj45"],
    "staple": ["cable staple", "clip", "insulated"],
    "screw clip": ["grip clip", "clip", "cable"],
    "wall anchor": ["anchor", "drywall", "1/4"],
}

SPLICING = {
    "closure": ["splice case", "fosc", "dome", "enclosure"],
    "fosc": ["closure", "splice", "fiber optic"],
    "tray": ["splice", "fusion", "24", "72", "ribbon"],
    "pigtail": ["pig tail", "fiber", "sc", "lc"],
    "pig tail": ["pigtail", "fiber"],
    "splitter": ["plc", "1x8", "1x32", "1x4"],
    "plc": ["splitter", "planar", "lightwave"],
    "splice sleeve": ["sleeve", "protection", "heat shrink"],
    "sleeve": ["splice sleeve", "heat shrink", "protector"],
    "fiber": ["cable", "loose tube", "ribbon", "single mode"],
    "apc": ["connector", "lc", "sc", "green", "angle"],
    "patch cord": ["jumper", "patch cable", "fiber patch"],
}

OTHER = {
    "switch": ["poe switch", "network", "ethernet", "mikrotik"],
    "router": ["gateway", "firewall", "switch", "mikrotik", "cisco"],
    "network cable": ["cat 5", "cat 6", "cat5", "cat6", "patch cable", "ethernet", "utp"],
    "poe": ["power over ethernet", "injector", "power supply", "48v", "24v"],
    "power supply": ["psu", "meanwell", "adapter", "brick"],
    "ups": ["battery", "backup", "uninterruptible", "cyberpower"],
    "antenna": ["radio", "wireless", "dish", "sector", "omni"],
    "wireless": ["wifi", "wi-fi", "radio", "access point", "ap"],
    "enclosure": ["box", "housing", "case", "cabinet", "nema"],
    "drill": ["driver", "impact", "screw gun", "bit"],
    "zip tie": ["cable tie", "tie wrap", "ty-rap"],
    "tape": ["electrical tape", "vinyl", "friction"],
    "ppe": ["safety", "gloves", "glasses", "vest", "hard hat"],
    "alcohol": ["isopropyl", "cleaner", "ipa"],
    "paint": ["marking", "spray", "orange", "fluorescent"],
}

CATEGORIES = {
    "aerial": AERIAL,
    "underground": UNDERGROUND,
    "installing": INSTALLING,
    "splicing": SPLICING,
    "other": OTHER,
}

SYNONYMS: dict[str, list[str]] = {}
for _table in CATEGORIES.values():
    SYNONYMS.update(_table)

SIZE_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(?:inch|in|\"|''|ft|foot|feet|')?", re.IGNORECASE)


def size_variants(size: str) -> list[str]:
    return [
        f'{size}"',
        f"{size}''",
        f"{size} inch",
        f"{size}in",
        f"{size} in",
        f"x {size}",
        f"x{size}",
        f"{size}'",
        f"{size} ft",
        f"{size}ft",
        f"{size} foot",
    ]


def expand_search_query(query: str) -> list[str]:
    """Terms to OR together when searching for ``query`` (the query first)."""
    q = query.lower().strip()
    if not q:
        return []

    terms = [q]

    def add(term: str) -> None:
        term = term.lower()
        if term not in terms:
            terms.append(term)

    for term in SYNONYMS.get(q, []):
        add(term)

    for key, values in SYNONYMS.items():
        if key in q or q in key:
            add(key)
            for term in values:
                add(term)

    m = SIZE_RE.search(q)
    if m:
        for term in size_variants(m.group(1)):
            add(term)

    return terms


def category_of(term: str) -> str:
    t = term.lower()
    for name, table in CATEGORIES.items():
        if t in table:
            return name
    return "unknown"
