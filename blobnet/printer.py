"""Human readable report of a query result."""

from __future__ import annotations

from typing import List

from . import blobindex
from .capabilities import EqualsCaveats, IndexCaveats, LocationCaveats
from .digest import format_digest
from .indexing.query import QueryResult
from .ucan import Ability, parse_delegation


def format_query_result(result: QueryResult) -> str:
    lines: List[str] = ["", "# Query Results", "", f"## Claims ({len(result.claims)})", ""]
    for i, link in enumerate(result.claims, start=1):
        claim = parse_delegation(link, result.blocks)
        cap = claim.capabilities[0]
        lines += [
            f"{i}. {link}",
            f"\tIssuer:   {claim.issuer}",
            f"\tAudience: {claim.audience}",
            f"\tCan:      {cap.can.value}",
            f"\tWith:     {cap.with_}",
        ]
        if cap.can is Ability.ASSERT_LOCATION:
            nb = LocationCaveats.model_validate(cap.nb)
            lines += [
                "\tCaveats:",
                f"\t\tSpace:    {nb.space}",
                f"\t\tContent:  {format_digest(nb.content)}",
                f"\t\tLocation: {nb.location[0]}",
            ]
            if nb.range is not None:
                end = "" if nb.range.length is None else nb.range.offset + nb.range.length
                lines.append(f"\t\tRange:    {nb.range.offset}-{end}")
        elif cap.can is Ability.ASSERT_INDEX:
            nb = IndexCaveats.model_validate(cap.nb)
            lines += ["\tCaveats:", f"\t\tContent: {nb.content}", f"\t\tIndex:   {nb.index}"]
        elif cap.can is Ability.ASSERT_EQUALS:
            nb = EqualsCaveats.model_validate(cap.nb)
            lines += [
                "\tCaveats:",
                f"\t\tContent: {format_digest(nb.content)}",
                f"\t\tEquals:  {nb.equals}",
            ]
        lines.append("")

    lines += [f"## Indexes ({len(result.indexes)})", ""]
    reader = result.reader()
    for i, link in enumerate(result.indexes, start=1):
        index = blobindex.extract(reader.get(link))
        lines += [f"{i}. {link}", f"\tContent: {index.content}", f"\tShards ({len(index.shards)}):"]
        lines += format_index_shards(index)
        lines.append("")
    return "\n".join(lines)


def format_index_shards(index: blobindex.ShardedDagIndex) -> List[str]:
    lines: List[str] = []
    for shard, slices in index.iter_shards():
        lines.append(f"\t\t{format_digest(shard)}")
        for digest, position in slices:
            lines.append(f"\t\t\t{format_digest(digest)} {position.offset}-{position.end}")
    return lines
