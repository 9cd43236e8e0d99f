from collections.abc import Iterator


def _is_continuation(byte: int) -> bool:
    return byte & 0xC0 == 0x80


class ChunkSplitter:
    """Splits an oversized blob into overlapping windows.

    Each window is at most ``max_chunk_size`` bytes and starts
    ``max_chunk_size - overlap_size`` bytes after the previous one, so a
    record straddling a window boundary appears whole in at least one window.
    """

    def __init__(self, max_chunk_size: int, overlap_size: int) -> None:
        self._validate(max_chunk_size, overlap_size)
        self._max_chunk_size = max_chunk_size
        self._overlap_size = overlap_size

    @property
    def max_chunk_size(self) -> int:
        return self._max_chunk_size

    @property
    def overlap_size(self) -> int:
        return self._overlap_size

    def split(
        self,
        content: bytes,
        max_chunk_size: int | None = None,
        overlap_size: int | None = None,
    ) -> list[bytes]:
        """Return the windows covering ``content``.

        Args:
            content: Raw bytes to split.
            max_chunk_size: Overrides the configured window size.
            overlap_size: Overrides the configured overlap.

        Returns:
            A single-element list holding ``content`` when it fits in one
            window, otherwise the overlapping windows in offset order.

        Raises:
            ValueError: if the window or overlap size is invalid.
        """
        return [
            content[start:end]
            for start, end in self._spans(len(content), max_chunk_size, overlap_size)
        ]

    def split_text(self, text: str) -> list[str]:
        """Split ``text`` over the windows of its UTF-8 encoding.

        The windows are the ones ``split`` produces for the encoded bytes, with
        multi-byte characters kept whole: a window cut inside a character runs
        on to that character's last byte, and the next window drops the
        continuation bytes it starts with. No character is lost, even with no
        overlap, and a window may exceed ``max_chunk_size`` by up to 3 bytes.
        """
        content = text.encode("utf-8")
        total = len(content)
        chunks: list[str] = []
        for start, end in self._spans(total):
            while start < end and _is_continuation(content[start]):
                start += 1
            while end < total and _is_continuation(content[end]):
                end += 1
            chunks.append(content[start:end].decode("utf-8"))
        return chunks

    def _spans(
        self,
        total: int,
        max_chunk_size: int | None = None,
        overlap_size: int | None = None,
    ) -> Iterator[tuple[int, int]]:
        size = self._max_chunk_size if max_chunk_size is None else max_chunk_size
        overlap = self._overlap_size if overlap_size is None else overlap_size
        self._validate(size, overlap)

        if total <= size:
            yield 0, total
            return

        step = size - overlap
        offset = 0
        while True:
            end = min(offset + size, total)
            yield offset, end
            if end >= total:
                return
            offset += step

    @staticmethod
    def _validate(max_chunk_size: int, overlap_size: int) -> None:
        if max_chunk_size <= 0:
            raise ValueError(f"max_chunk_size must be positive, got {max_chunk_size}")
        if overlap_size < 0:
            raise ValueError(f"overlap_size must not be negative, got {overlap_size}")
        if overlap_size >= max_chunk_size:
            raise ValueError(
                f"overlap_size ({overlap_size}) must be smaller than "
                f"max_chunk_size ({max_chunk_size})"
            )
