from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import httpx
from PIL import Image

from ..config import SNAPSHOT_DEADLINE, TILE_EDGE
from ..errors import SnapshotDeadlineExceeded
from ..models import SnapshotId
from .artifacts import MosaicArtifact, finalize
from .assembler import MosaicAssembler, ProgressCallback
from .coordinator import FetchCoordinator
from .tiles import RetryPolicy, build_http_client

log = logging.getLogger(__name__)


async def _cancel(*tasks: "asyncio.Task") -> None:
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


async def collect_canvas(
    snapshot: SnapshotId,
    client: httpx.AsyncClient,
    *,
    policy: Optional[RetryPolicy] = None,
    deadline: Optional[float] = None,
    on_progress: Optional[ProgressCallback] = None,
    tile_edge: int = TILE_EDGE,
) -> Image.Image:
    """
    Fetch every tile of `snapshot` and assemble them into one canvas.

    The first terminal tile failure, or the deadline elapsing, cancels every
    outstanding fetch and the assembler before the error is raised.
    """
    handle = await FetchCoordinator(client, policy=policy).fetch_all(snapshot)
    assembler = MosaicAssembler(tile_edge=tile_edge, on_progress=on_progress)
    assembly = asyncio.create_task(assembler.assemble(handle.conduit), name="assembler")
    joiner = asyncio.create_task(handle.join(), name="fetch-join")

    try:
        done, _ = await asyncio.wait(
            {assembly, joiner}, timeout=deadline, return_when=asyncio.FIRST_EXCEPTION
        )
    except BaseException:
        await _cancel(assembly, joiner)
        await handle.cancel()
        raise

    for task in (joiner, assembly):
        if task in done and task.exception() is not None:
            await _cancel(assembly, joiner)
            await handle.cancel()
            raise task.exception()

    if len(done) < 2:
        await _cancel(assembly, joiner)
        await handle.cancel()
        raise SnapshotDeadlineExceeded(
            f"{snapshot} not complete after {deadline:.0f}s "
            f"({assembler.consumed}/{assembler.total} tiles, states {dict(handle.states())})"
        )
    return assembly.result()


async def run_snapshot(
    snapshot: SnapshotId,
    destination_dir: Path,
    *,
    client: Optional[httpx.AsyncClient] = None,
    policy: Optional[RetryPolicy] = None,
    deadline: Optional[float] = SNAPSHOT_DEADLINE or None,
    on_progress: Optional[ProgressCallback] = None,
    tile_edge: int = TILE_EDGE,
) -> MosaicArtifact:
    owns_client = client is None
    if client is None:
        client = build_http_client()
    try:
        canvas = await collect_canvas(
            snapshot,
            client,
            policy=policy,
            deadline=deadline,
            on_progress=on_progress,
            tile_edge=tile_edge,
        )
    finally:
        if owns_client:
            await client.aclose()
    # PNG encoding of a full disc takes seconds; keep it off the event loop
    return await asyncio.to_thread(finalize, canvas, snapshot, Path(destination_dir))
