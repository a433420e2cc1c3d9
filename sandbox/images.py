"""Image resolution – local lookup, registry pull, local build fallback."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from sandbox.errors import ImageResolutionFailed, SandboxError
from sandbox.runtime import RuntimeControl
from shared.schemas import ImageSpec

logger = logging.getLogger(__name__)

# Repository root: holds the Dockerfile of the default execution-server image.
PACKAGE_BUILD_CONTEXT = Path(__file__).resolve().parents[1]


def image_spec(
    default_image: str,
    image_override: str | None = None,
    workspace: str | Path | None = None,
) -> ImageSpec:
    """Choose the image reference and where a fallback build happens.

    The default image always builds from the context shipped with this
    package; an operator-supplied image builds from the invoking workspace
    when it carries a Dockerfile.
    """
    if not image_override:
        return ImageSpec(
            reference=default_image,
            is_operator_supplied=False,
            build_context=PACKAGE_BUILD_CONTEXT,
        )

    workspace_dir = Path(workspace or Path.cwd()).resolve()
    context = workspace_dir if (workspace_dir / "Dockerfile").is_file() else PACKAGE_BUILD_CONTEXT
    return ImageSpec(reference=image_override, is_operator_supplied=True, build_context=context)


class ImageResolver:
    """Makes sure ``spec.reference`` is present in the local runtime."""

    def __init__(self, runtime: RuntimeControl, spec: ImageSpec):
        self.runtime = runtime
        self.spec = spec
        self._prewarm_task: asyncio.Task | None = None

    @property
    def reference(self) -> str:
        return self.spec.reference

    async def resolve(self) -> None:
        """Local image → pull → build.  Raises ``ImageResolutionFailed``."""
        reference = self.spec.reference
        if await asyncio.to_thread(self.runtime.image_exists, reference):
            logger.debug("Image %s already present", reference)
            return

        logger.info("Image %s not found locally, attempting to pull…", reference)
        try:
            await asyncio.to_thread(self.runtime.pull_image, reference)
            logger.info("Image %s pulled successfully", reference)
            return
        except SandboxError as exc:
            logger.warning("Pull of %s failed (%s), falling back to local build…", reference, exc)

        try:
            await asyncio.to_thread(self.runtime.build_image, reference, self.spec.build_context)
        except ImageResolutionFailed:
            raise
        except SandboxError as exc:
            raise ImageResolutionFailed(reference, str(exc)) from exc
        logger.info("Image %s built from %s", reference, self.spec.build_context)

    # -- Prewarm -------------------------------------------------------

    async def prewarm(self) -> bool:
        """Best-effort ``resolve``; returns False instead of raising."""
        logger.info("Prewarming image %s…", self.spec.reference)
        try:
            await asyncio.to_thread(self.runtime.version)
        except SandboxError as exc:
            logger.warning("Container runtime not available, skipping prewarm: %s", exc)
            return False
        try:
            await self.resolve()
        except Exception as exc:
            logger.warning("Failed to prewarm image %s: %s", self.spec.reference, exc)
            return False
        logger.info("Image %s ready", self.spec.reference)
        return True

    def start_prewarm(self) -> asyncio.Task:
        """Schedule ``prewarm`` in the background of the running loop."""
        if self._prewarm_task is None or self._prewarm_task.done():
            # Keep a strong reference so the task isn't garbage-collected.
            self._prewarm_task = asyncio.create_task(self.prewarm(), name="image-prewarm")
        return self._prewarm_task

    async def cancel_prewarm(self) -> None:
        """Stop a still-running prewarm and wait for it to unwind."""
        task = self._prewarm_task
        self._prewarm_task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.info("Prewarm of %s cancelled", self.spec.reference)
