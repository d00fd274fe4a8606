"""
Gradient (Perlin) noise for the `perlin` builtin.

Implements Ken Perlin's improved noise with a permutation table drawn from a
seeded numpy generator, so the same seed always gives the same field. Works
on scalars or numpy arrays; results lie roughly in [-1, 1] and are exactly 0
at integer lattice points.
"""

import numpy as np

# Gradient directions: the 12 cube edge midpoints, padded to 16 entries
_GRADIENTS = np.array([
    [1, 1, 0], [-1, 1, 0], [1, -1, 0], [-1, -1, 0],
    [1, 0, 1], [-1, 0, 1], [1, 0, -1], [-1, 0, -1],
    [0, 1, 1], [0, -1, 1], [0, 1, -1], [0, -1, -1],
    [1, 1, 0], [0, -1, 1], [-1, 1, 0], [0, -1, -1],
], dtype=float)


def _fade(t):
    return t * t * t * (t * (t * 6.0 - 15.0) + 10.0)


def _lerp(a, b, t):
    return a + t * (b - a)


class PerlinNoise:
    """Seeded 3D gradient noise."""

    def __init__(self, seed: int = 0):
        self.seed = seed
        rng = np.random.default_rng(seed)
        perm = rng.permutation(256)
        self._perm = np.concatenate([perm, perm]).astype(np.int64)

    def _grad(self, h, x, y, z):
        g = _GRADIENTS[h & 15]
        return g[..., 0] * x + g[..., 1] * y + g[..., 2] * z

    def noise3(self, x, y, z):
        """Noise at (x, y, z); accepts floats or broadcastable arrays."""
        x = np.asarray(x, dtype=float)
        y = np.asarray(y, dtype=float)
        z = np.asarray(z, dtype=float)

        xi = np.floor(x).astype(np.int64)
        yi = np.floor(y).astype(np.int64)
        zi = np.floor(z).astype(np.int64)
        xf, yf, zf = x - xi, y - yi, z - zi
        xi, yi, zi = xi & 255, yi & 255, zi & 255

        u, v, w = _fade(xf), _fade(yf), _fade(zf)
        p = self._perm

        a = p[xi] + yi
        aa = p[a] + zi
        ab = p[a + 1] + zi
        b = p[xi + 1] + yi
        ba = p[b] + zi
        bb = p[b + 1] + zi

        x1 = _lerp(self._grad(p[aa], xf, yf, zf),
                   self._grad(p[ba], xf - 1, yf, zf), u)
        x2 = _lerp(self._grad(p[ab], xf, yf - 1, zf),
                   self._grad(p[bb], xf - 1, yf - 1, zf), u)
        y1 = _lerp(x1, x2, v)

        x1 = _lerp(self._grad(p[aa + 1], xf, yf, zf - 1),
                   self._grad(p[ba + 1], xf - 1, yf, zf - 1), u)
        x2 = _lerp(self._grad(p[ab + 1], xf, yf - 1, zf - 1),
                   self._grad(p[bb + 1], xf - 1, yf - 1, zf - 1), u)
        y2 = _lerp(x1, x2, v)

        result = _lerp(y1, y2, w)
        if result.ndim == 0:
            return float(result)
        return result

    def noise2(self, x, y):
        return self.noise3(x, y, 0.0)
