"""Unit tests for the PCG random number generator.

Tests cover:
- Kernel stream matches the host mirror bit for bit
- Output range of the float draws
- Seeding: distinct pixels and passes give distinct streams
- Unsigned shift and constant handling
"""

import pytest
import taichi as ti


class TestHostMirror:
    """Tests for the pure-Python PCG mirror."""

    def test_pcg_hash_host_is_deterministic(self):
        """Test that the hash is a pure function of its input."""
        from sunsky.core.rng import pcg_hash_host

        assert pcg_hash_host(12345) == pcg_hash_host(12345)
        assert pcg_hash_host(1) != pcg_hash_host(2)

    def test_pcg_hash_host_stays_in_32_bits(self):
        """Test that outputs are unsigned 32-bit values."""
        from sunsky.core.rng import pcg_hash_host

        for x in (0, 1, 0xFFFFFFFF, 0x80000000, 987654321):
            h = pcg_hash_host(x)
            assert 0 <= h <= 0xFFFFFFFF

    def test_floats_in_unit_interval(self):
        """Test that next_float never returns 1.0."""
        from sunsky.core.rng import PcgRng

        rng = PcgRng(pixel_index=7, frame_seed=99)
        values = [rng.next_float() for _ in range(10000)]
        assert min(values) >= 0.0
        assert max(values) < 1.0

    def test_mean_is_near_half(self):
        """Test that the stream is roughly uniform."""
        from sunsky.core.rng import PcgRng

        rng = PcgRng(pixel_index=3, frame_seed=17)
        n = 20000
        mean = sum(rng.next_float() for _ in range(n)) / n
        assert abs(mean - 0.5) < 0.01

    def test_frame_seed_differs_per_pass(self):
        """Test that consecutive passes get different seeds."""
        from sunsky.core.rng import make_frame_seed

        seeds = {make_frame_seed(0, k) for k in range(256)}
        assert len(seeds) == 256

    def test_frame_seed_depends_on_user_seed(self):
        """Test that the user seed changes the frame seed."""
        from sunsky.core.rng import make_frame_seed

        assert make_frame_seed(1, 0) != make_frame_seed(2, 0)

    def test_as_signed_i32(self):
        """Test reinterpretation of large unsigned constants."""
        from sunsky.core.rng import as_signed_i32

        assert as_signed_i32(0) == 0
        assert as_signed_i32(0x7FFFFFFF) == 0x7FFFFFFF
        assert as_signed_i32(0x80000000) == -(1 << 31)
        assert as_signed_i32(0xFFFFFFFF) == -1


class TestKernelStream:
    """Tests that the kernel generator matches the host mirror."""

    def test_pcg_hash_matches_host(self):
        """Test pcg_hash in a kernel against pcg_hash_host."""
        from sunsky.core.rng import as_signed_i32, pcg_hash, pcg_hash_host

        inputs = [0, 1, 42, 0x7FFFFFFF, 0x80000000, 0xDEADBEEF]
        result = ti.field(dtype=ti.u32, shape=len(inputs))
        source = ti.field(dtype=ti.i32, shape=len(inputs))
        for k, x in enumerate(inputs):
            source[k] = as_signed_i32(x)

        @ti.kernel
        def test_kernel():
            for k in range(len(inputs)):
                result[k] = pcg_hash(ti.cast(source[k], ti.u32))

        test_kernel()
        for k, x in enumerate(inputs):
            assert int(result[k]) & 0xFFFFFFFF == pcg_hash_host(x)

    def test_stream_matches_host(self):
        """Test that rng_seed + rng_next_u32 reproduce PcgRng exactly."""
        from sunsky.core.rng import PcgRng, as_signed_i32, rng_next_u32, rng_seed

        pixel_index = 1234
        frame_seed = 0x9E3779B9
        n = 16
        result = ti.field(dtype=ti.u32, shape=n)

        @ti.kernel
        def test_kernel(seed: ti.i32):
            state = rng_seed(pixel_index, ti.cast(seed, ti.u32))
            for k in ti.static(range(n)):
                next_state, bits = rng_next_u32(state)
                state = next_state
                result[k] = bits

        test_kernel(as_signed_i32(frame_seed))

        rng = PcgRng(pixel_index, frame_seed)
        for k in range(n):
            assert int(result[k]) & 0xFFFFFFFF == rng.next_u32()

    def test_float_stream_matches_host(self):
        """Test that float draws agree with the host to float precision."""
        from sunsky.core.rng import PcgRng, rng_next_float2, rng_seed

        result = ti.Vector.field(2, dtype=ti.f32, shape=8)

        @ti.kernel
        def test_kernel():
            state = rng_seed(5, ti.cast(77, ti.u32))
            for k in ti.static(range(8)):
                next_state, u = rng_next_float2(state)
                state = next_state
                result[k] = u

        test_kernel()
        rng = PcgRng(5, 77)
        for k in range(8):
            a, b = rng.next_float2()
            assert result[k][0] == pytest.approx(a, abs=1e-6)
            assert result[k][1] == pytest.approx(b, abs=1e-6)

    def test_u32_shr_is_logical(self):
        """Test that shifting a value with the top bit set fills with zeros."""
        from sunsky.core.rng import as_signed_i32, u32_shr

        result = ti.field(dtype=ti.u32, shape=())

        @ti.kernel
        def test_kernel(x: ti.i32):
            result[None] = u32_shr(ti.cast(x, ti.u32), ti.cast(28, ti.u32))

        test_kernel(as_signed_i32(0xF0000000))
        assert int(result[None]) & 0xFFFFFFFF == 0xF
