"""Test helpers for building small Form 990 corpora on disk.

A corpus is a data root holding one directory per extracted archive, the same
layout ShardDiscoverer reads in production.
"""
from pathlib import Path
from typing import Dict, Optional


EFILE_NAMESPACE = "http://www.irs.gov/efile"


def form990_xml(ein: str, name: str, tax_year: str = "2023", return_type: str = "990",
                extra: str = "", namespace: Optional[str] = EFILE_NAMESPACE) -> str:
    """Return a minimal but realistic e-file return document."""
    xmlns = f' xmlns="{namespace}"' if namespace else ""
    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        f'<Return{xmlns} returnVersion="2023v4.0">\n'
        '  <ReturnHeader>\n'
        f'    <TaxYr>{tax_year}</TaxYr>\n'
        f'    <ReturnTypeCd>{return_type}</ReturnTypeCd>\n'
        '    <Filer>\n'
        f'      <EIN>{ein}</EIN>\n'
        '      <BusinessName>\n'
        f'        <BusinessNameLine1Txt>{name}</BusinessNameLine1Txt>\n'
        '      </BusinessName>\n'
        '    </Filer>\n'
        '  </ReturnHeader>\n'
        f'  <ReturnData>{extra}</ReturnData>\n'
        '</Return>\n'
    )


def build_corpus(root: Path, layout: Dict[str, Dict[str, str]]) -> Path:
    """
    Write {shard_name: {file_name: content}} under root and return root.

    Content is written as UTF-8 bytes, so malformed documents can be planted as
    plain strings too.
    """
    root.mkdir(parents=True, exist_ok=True)
    for shard_name, documents in layout.items():
        shard_dir = root / shard_name
        shard_dir.mkdir(parents=True, exist_ok=True)
        for file_name, content in documents.items():
            (shard_dir / file_name).write_bytes(content.encode("utf-8"))
    return root


def standard_layout(shards: int = 3, documents: int = 4) -> Dict[str, Dict[str, str]]:
    """Well-formed corpus with predictable EINs: <shard>-<document>."""
    layout = {}
    for s in range(shards):
        shard_name = f"2023_TEOS_XML_{s:02d}A"
        layout[shard_name] = {
            f"2023{s:02d}{d:04d}_public.xml": form990_xml(f"{s:02d}-{d:07d}", f"Org {s}-{d}")
            for d in range(documents)
        }
    return layout
