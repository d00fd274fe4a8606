"""
Scene entities produced by the binder.

Every entity is a frozen dataclass; mesh geometry is held in read-only numpy
arrays. A BoundScene can therefore be shared between renderer threads
without copying.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

import numpy as np

from .runtime.values import Vector3, Color, WHITE

ORIGIN = Vector3(0.0, 0.0, 0.0)
UP = Vector3(0.0, 1.0, 0.0)
DEFAULT_AMBIENT = Color(40.0, 40.0, 40.0)

SKYBOX_TYPES = ("normal", "solid", "cubemap")
TEXTURE_TYPES = ("solid", "checkerboard", "image")


def readonly_array(data, dtype, shape=None) -> np.ndarray:
    """Copy `data` into a numpy array that refuses writes."""
    array = np.array(data, dtype=dtype)
    if shape is not None:
        array = array.reshape(shape)
    array.setflags(write=False)
    return array


# --- Singletons ---

@dataclass(frozen=True)
class Camera:
    vw: int = 300
    vh: int = 200
    origin: Vector3 = ORIGIN
    yaw: float = 0.0
    pitch: float = 0.0
    fov: float = 60.0


@dataclass(frozen=True)
class SceneOptions:
    """Global render options (the `scene` object)."""
    max_ray_depth: int = 4
    ambient: Color = DEFAULT_AMBIENT


@dataclass(frozen=True)
class Skybox:
    """`type` is one of normal, solid or cubemap; `color`/`image` go with the last two."""
    type: str = "normal"
    color: Optional[Color] = None
    image: Optional[str] = None


# --- Materials ---

@dataclass(frozen=True)
class Texture:
    """
    A surface texture.

    solid uses `primary`; checkerboard alternates `primary` and `secondary`;
    image refers to `path`, which the renderer loads lazily.
    """
    type: str = "solid"
    primary: Color = WHITE
    secondary: Optional[Color] = None
    path: Optional[str] = None


@dataclass(frozen=True)
class Material:
    texture: Texture = field(default_factory=Texture)
    reflectiveness: float = 0.0
    transparency: float = 0.0
    ior: float = 1.5
    emissivity: float = 0.0


# --- Objects ---

@dataclass(frozen=True)
class Aabb:
    """Axis-aligned box centred on `position` with full extents `size`."""
    position: Vector3
    size: Vector3
    material: Material = field(default_factory=Material)


@dataclass(frozen=True)
class Sphere:
    position: Vector3
    radius: float
    material: Material = field(default_factory=Material)


@dataclass(frozen=True)
class Plane:
    origin: Vector3
    normal: Vector3 = UP
    uv_wrap: float = 1.0
    material: Material = field(default_factory=Material)


@dataclass(frozen=True, eq=False)
class Mesh:
    """
    A triangle mesh, either inline or loaded from `path` by the renderer.

    For inline meshes `vertices` is an (N, 3) float array and `triangles`
    an (M, 3) integer array of vertex indices. Both are read-only.
    """
    path: Optional[str] = None
    vertices: Optional[np.ndarray] = None
    triangles: Optional[np.ndarray] = None
    position: Vector3 = ORIGIN
    scale: float = 1.0
    rotate_xyz: Optional[Vector3] = None
    rotate_zyx: Optional[Vector3] = None
    material: Material = field(default_factory=Material)

    @property
    def triangle_count(self) -> int:
        if self.triangles is None:
            return 0
        return len(self.triangles)


# --- Lights ---

@dataclass(frozen=True)
class PointLight:
    position: Vector3
    color: Color = WHITE
    intensity: float = 6.0
    specular_power: int = 32
    specular_strength: float = 0.7
    max_distance: float = 50.0


@dataclass(frozen=True)
class Sun:
    """Directional light; `vector` is normalised."""
    vector: Vector3
    color: Color = WHITE
    intensity: float = 1.0
    specular_power: int = 32
    specular_strength: float = 0.5
    shadows: bool = True
    shadow_coefficient: float = 0.5


@dataclass(frozen=True)
class SphereSurface:
    position: Vector3
    radius: float


@dataclass(frozen=True)
class RectangleSurface:
    """Corners c00, c01, c10, c11 of a (possibly skewed) quad."""
    corners: Tuple[Vector3, Vector3, Vector3, Vector3]


@dataclass(frozen=True)
class AreaLight:
    surface: Union[SphereSurface, RectangleSurface]
    color: Color = WHITE
    intensity: float = 6.0
    specular_power: int = 32
    specular_strength: float = 0.7
    iterations: int = 4
    max_distance: float = 50.0


SceneObject = Union[Camera, SceneOptions, Skybox, Aabb, Mesh, Plane, Sphere,
                    PointLight, Sun, AreaLight]

GEOMETRY_TYPES = (Aabb, Mesh, Plane, Sphere)
LIGHT_TYPES = (PointLight, Sun, AreaLight)


@dataclass(frozen=True)
class BoundScene:
    """A fully bound scene, ready for rendering."""
    camera: Camera = field(default_factory=Camera)
    options: SceneOptions = field(default_factory=SceneOptions)
    skybox: Skybox = field(default_factory=Skybox)
    objects: Tuple = ()
    lights: Tuple = ()
    time: float = 0.0

    def to_python(self) -> dict:
        """Plain-data form for YAML/JSON dumps."""
        return {
            "time": self.time,
            "camera": _plain(self.camera),
            "scene": _plain(self.options),
            "skybox": _plain(self.skybox),
            "objects": [dict(kind=_kind_name(obj), **_plain(obj)) for obj in self.objects],
            "lights": [dict(kind=_kind_name(light), **_plain(light)) for light in self.lights],
        }


_KIND_NAMES = {
    Aabb: "aabb",
    Mesh: "mesh",
    Plane: "plane",
    Sphere: "sphere",
    PointLight: "point_light",
    Sun: "sun",
    AreaLight: "area_light",
}


def _kind_name(obj) -> str:
    return _KIND_NAMES[type(obj)]


def _plain(obj):
    """Recursively convert entities, vectors, colors and arrays to plain data."""
    if isinstance(obj, (Vector3, Color)):
        return list(obj.as_tuple())
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, (SphereSurface, RectangleSurface)):
        data = {"type": "sphere" if isinstance(obj, SphereSurface) else "rectangle"}
        data.update(_plain_fields(obj))
        return data
    if hasattr(obj, "__dataclass_fields__"):
        return _plain_fields(obj)
    if isinstance(obj, tuple):
        return [_plain(item) for item in obj]
    return obj


def _plain_fields(obj) -> dict:
    return {name: _plain(getattr(obj, name)) for name in obj.__dataclass_fields__}
