"""Protocol definitions for the graphics device collaborator.

The oracle never talks to a concrete graphics API. It drives whatever
object satisfies these protocols: a WebGPU adapter, a trace replayer, or the
in-memory ``texzero.device.simulated.SimulatedDevice``.

Submission is a blocking hand-off: ``Queue.submit`` enqueues work and
``Queue.on_submitted_work_done`` returns once it has completed;
``Buffer.map_read`` returns only when the contents are available.
"""

from __future__ import annotations

from collections.abc import Sequence
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from texzero.constants import BufferUsage
    from texzero.device.descriptors import (
        DrawDescriptor,
        Extent3D,
        ImageCopyBuffer,
        ImageCopyTexture,
        RenderPassDescriptor,
        TexelLoadDescriptor,
        TextureDescriptor,
        TextureViewDescriptor,
    )


@runtime_checkable
class Buffer(Protocol):
    """Linear device memory."""

    @property
    def size(self) -> int: ...

    def map_read(self) -> bytes:
        """Map the buffer for reading and return a copy of its contents.

        Requires MAP_READ usage. Blocks until pending writes are visible.
        """
        ...

    def destroy(self) -> None: ...


@runtime_checkable
class TextureView(Protocol):
    @property
    def texture(self) -> Texture: ...

    @property
    def descriptor(self) -> TextureViewDescriptor: ...


@runtime_checkable
class Texture(Protocol):
    @property
    def descriptor(self) -> TextureDescriptor: ...

    def create_view(self, descriptor: TextureViewDescriptor | None = None) -> TextureView: ...

    def destroy(self) -> None: ...


@runtime_checkable
class RenderPassEncoder(Protocol):
    def draw(self, draw: DrawDescriptor) -> None: ...

    def end(self) -> None:
        """Close the pass; store operations take effect when it executes."""
        ...


@runtime_checkable
class ComputePassEncoder(Protocol):
    def dispatch_texel_load(self, load: TexelLoadDescriptor) -> None: ...

    def end(self) -> None: ...


@runtime_checkable
class CommandEncoder(Protocol):
    def copy_buffer_to_buffer(
        self,
        source: Buffer,
        source_offset: int,
        destination: Buffer,
        destination_offset: int,
        size: int,
    ) -> None: ...

    def copy_buffer_to_texture(
        self, source: ImageCopyBuffer, destination: ImageCopyTexture, extent: Extent3D
    ) -> None: ...

    def copy_texture_to_buffer(
        self, source: ImageCopyTexture, destination: ImageCopyBuffer, extent: Extent3D
    ) -> None: ...

    def copy_texture_to_texture(
        self, source: ImageCopyTexture, destination: ImageCopyTexture, extent: Extent3D
    ) -> None: ...

    def begin_render_pass(self, descriptor: RenderPassDescriptor) -> RenderPassEncoder: ...

    def begin_compute_pass(self) -> ComputePassEncoder: ...

    def finish(self) -> Any:
        """Return an opaque command buffer for ``Queue.submit``."""
        ...


@runtime_checkable
class Queue(Protocol):
    def submit(self, command_buffers: Sequence[Any]) -> None: ...

    def on_submitted_work_done(self) -> None: ...


@runtime_checkable
class Device(Protocol):
    """A graphics device able to run one case at a time."""

    @property
    def features(self) -> frozenset[str]: ...

    @property
    def queue(self) -> Queue: ...

    def create_texture(self, descriptor: TextureDescriptor) -> Texture:
        """Create a texture.

        Raises:
            UnsupportedCapabilityError: Format feature missing on this device.
            DeviceOutOfMemoryError: Allocation failed.
            DeviceValidationError: Invalid descriptor.
        """
        ...

    def create_buffer(self, size: int, usage: BufferUsage, contents: bytes | None = None) -> Buffer: ...

    def create_command_encoder(self) -> CommandEncoder: ...


@runtime_checkable
class DevicePool(Protocol):
    """Process-wide source of devices. May block while acquiring."""

    def acquire(self, required_features: frozenset[str] = frozenset()) -> AbstractContextManager[Device]:
        """Lease a device exposing ``required_features`` for one case.

        Raises:
            UnsupportedCapabilityError: No device offers the features.
        """
        ...
