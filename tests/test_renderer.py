"""
Tile Renderer Tests
===================

Segment addressing, bounds checks and encoding.
"""

import numpy as np
import pytest

from tilestream.errors import OutOfBound
from tilestream.tiles.renderer import (
    TileEncoder,
    decode_data_url,
    render,
    render_batch,
)

from conftest import SEGMENT, make_frame


class TestRender:
    """Tests for single-frame rendering."""

    def test_first_segment_is_top_left(self, frames):
        """Offset (1, 1) is the top-left SxS rectangle."""
        frame = frames[0]
        tile = render(frame, SEGMENT, SEGMENT, 1, 1)

        assert tile.shape == (SEGMENT, SEGMENT, 3)
        np.testing.assert_array_equal(tile, frame.pixels[:SEGMENT, :SEGMENT])

    def test_segment_origin(self, frames):
        """Offset (3, 2) starts at pixel (32, 16)."""
        frame = frames[1]
        tile = render(frame, SEGMENT, SEGMENT, 3, 2)

        np.testing.assert_array_equal(tile, frame.pixels[16:32, 32:48])
        assert tile[0, 0, 0] == 32  # x coordinate
        assert tile[0, 0, 1] == 16  # y coordinate

    def test_last_segment_in_bounds(self, frames):
        """The bottom-right segment (20, 12) still fits."""
        tile = render(frames[0], SEGMENT, SEGMENT, 20, 12)
        np.testing.assert_array_equal(tile, frames[0].pixels[176:192, 304:320])

    def test_non_square_segment(self):
        frame = make_frame(1, width=64, height=32)
        tile = render(frame, 32, 8, 2, 3)

        assert tile.shape == (8, 32, 3)
        np.testing.assert_array_equal(tile, frame.pixels[16:24, 32:64])

    @pytest.mark.parametrize("offset", [(0, 0), (-1, -1), (0, 3), (4, 0)])
    def test_non_positive_offset_is_whole_frame(self, frames, offset):
        """Any non-positive offset returns the whole frame, not a tile."""
        result = render(frames[0], SEGMENT, SEGMENT, *offset)

        assert result.shape == (192, 320, 3)
        np.testing.assert_array_equal(result, frames[0].pixels)

    @pytest.mark.parametrize("offset", [(21, 1), (1, 13), (21, 13)])
    def test_out_of_bounds(self, frames, offset):
        """A segment past the frame edge raises OutOfBound."""
        with pytest.raises(OutOfBound):
            render(frames[0], SEGMENT, SEGMENT, *offset)

    def test_whole_frame_sentinel_still_checks_bounds(self, frames):
        """(0, 13) asks for a row past the bottom edge."""
        with pytest.raises(OutOfBound):
            render(frames[0], SEGMENT, SEGMENT, 0, 13)

    def test_tile_is_read_only_view(self, frames):
        tile = render(frames[0], SEGMENT, SEGMENT, 2, 2)
        assert not tile.flags.writeable


class TestRenderBatch:
    """Tests for the all-frames batch mode."""

    def test_one_tile_per_frame_in_order(self, frames):
        tiles = render_batch(frames, SEGMENT, SEGMENT, 2, 1)

        assert len(tiles) == len(frames)
        for frame, tile in zip(frames, tiles):
            np.testing.assert_array_equal(tile, frame.pixels[0:16, 16:32])

    def test_batch_out_of_bounds(self, frames):
        with pytest.raises(OutOfBound):
            render_batch(frames, SEGMENT, SEGMENT, 21, 1)

    def test_empty_batch(self):
        assert render_batch([], SEGMENT, SEGMENT, 1, 1) == []


class TestTileEncoder:
    """Tests for data URL encoding."""

    def test_png_is_lossless(self, frames):
        encoder = TileEncoder("png")
        tile = render(frames[2], SEGMENT, SEGMENT, 5, 4)

        url = encoder.encode(tile)

        assert url.startswith("data:image/png;base64,")
        np.testing.assert_array_equal(decode_data_url(url), tile)

    def test_jpeg_format(self, frames):
        encoder = TileEncoder("jpeg", jpeg_quality=80)
        tile = render(frames[0], SEGMENT, SEGMENT, 1, 1)

        url = encoder.encode(tile)

        assert url.startswith("data:image/jpeg;base64,")
        assert decode_data_url(url).shape == tile.shape

    def test_format_is_case_insensitive(self):
        assert TileEncoder("PNG").format == "png"

    def test_unsupported_format(self):
        with pytest.raises(ValueError):
            TileEncoder("gif")

    def test_encoding_is_deterministic(self, frames):
        encoder = TileEncoder("png")
        tile = render(frames[0], SEGMENT, SEGMENT, 3, 3)
        assert encoder.encode(tile) == encoder.encode(tile)
