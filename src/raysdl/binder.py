"""
Scene binder: turns evaluated object declarations into scene entities.

Each object kind has a bind function that reads its fields through a
FieldReader, which checks presence and value kinds and fills defaults.
Unrecognised fields are ignored.
"""

import logging
import math
from typing import Callable, Dict, Mapping, Optional, Union

from . import scene
from .errors import (
    error_missing_field,
    error_field_type,
    error_unknown_object,
    error_conflicting_fields,
    error_invalid_field_value,
)
from .runtime.accumulator import SceneAccumulator, canonical_kind
from .runtime.values import Value, ValueKind, Vector3, Color, to_display
from .tokens import SourceSpan

logger = logging.getLogger(__name__)

_MISSING = object()


class FieldReader:
    """Typed, defaulting access to the fields of one declaration."""

    def __init__(self, kind: str, fields: Mapping[str, Value],
                 span: Optional[SourceSpan] = None):
        self.kind = kind
        self.fields = fields
        self.span = span

    def has(self, name: str) -> bool:
        return name in self.fields

    def _get(self, name: str, default) -> Optional[Value]:
        value = self.fields.get(name)
        if value is None:
            if default is _MISSING:
                raise error_missing_field(self.kind, name, self.span)
            return None
        return value

    def _mismatch(self, name: str, expected: str, value: Value):
        return error_field_type(self.kind, name, expected, value.kind_name, self.span)

    def number(self, name: str, default=_MISSING) -> float:
        value = self._get(name, default)
        if value is None:
            return default
        if value.kind != ValueKind.NUMBER:
            raise self._mismatch(name, "a number", value)
        return value.data

    def integer(self, name: str, default=_MISSING) -> int:
        """A number truncated toward zero."""
        number = self.number(name, default)
        if not math.isfinite(number):
            raise error_invalid_field_value(self.kind, name, f"{number} is not finite", self.span)
        return int(number)

    def fraction(self, name: str, default=_MISSING) -> float:
        """A number in [0, 1]."""
        number = self.number(name, default)
        if not 0.0 <= number <= 1.0:
            raise error_invalid_field_value(
                self.kind, name, f"{number} is outside [0, 1]", self.span
            )
        return number

    def string(self, name: str, default=_MISSING) -> str:
        value = self._get(name, default)
        if value is None:
            return default
        if value.kind != ValueKind.STRING:
            raise self._mismatch(name, "a string", value)
        return value.data

    def boolean(self, name: str, default=_MISSING) -> bool:
        value = self._get(name, default)
        if value is None:
            return default
        if value.kind != ValueKind.BOOL:
            raise self._mismatch(name, "a boolean", value)
        return value.data

    def vector(self, name: str, default=_MISSING) -> Vector3:
        value = self._get(name, default)
        if value is None:
            return default
        if value.kind != ValueKind.VECTOR:
            raise self._mismatch(name, "a vector", value)
        return value.data

    def direction(self, name: str, default=_MISSING) -> Vector3:
        """A non-zero vector, normalised."""
        v = self.vector(name, default)
        if v.magnitude() == 0.0:
            raise error_invalid_field_value(self.kind, name, "vector must be non-zero", self.span)
        return v.normalized()

    def color(self, name: str, default=_MISSING) -> Color:
        """A color; a vector is accepted and read as (r, g, b)."""
        value = self._get(name, default)
        if value is None:
            return default
        if value.kind == ValueKind.COLOR:
            return value.data
        if value.kind == ValueKind.VECTOR:
            return Color.from_vector(value.data)
        raise self._mismatch(name, "a color", value)

    def array(self, name: str, default=_MISSING) -> list:
        value = self._get(name, default)
        if value is None:
            return default
        if value.kind != ValueKind.ARRAY:
            raise self._mismatch(name, "an array", value)
        return value.data

    def dictionary(self, name: str, default=_MISSING) -> Optional[dict]:
        value = self._get(name, default)
        if value is None:
            return default
        if value.kind != ValueKind.DICTIONARY:
            raise self._mismatch(name, "a dictionary", value)
        return value.data

    def exclusive(self, first: str, second: str) -> None:
        if self.has(first) and self.has(second):
            raise error_conflicting_fields(self.kind, first, second, self.span)


# =============================================================================
# Materials
# =============================================================================

def bind_texture(fields: Mapping[str, Value], span: Optional[SourceSpan] = None) -> scene.Texture:
    """Bind a texture dictionary as built by solid(), checkerboard() or image()."""
    reader = FieldReader("texture", fields, span)
    texture_type = reader.string("type")

    if texture_type == "solid":
        return scene.Texture("solid", primary=reader.color("color"))
    if texture_type == "checkerboard":
        return scene.Texture(
            "checkerboard",
            primary=reader.color("primary"),
            secondary=reader.color("secondary"),
        )
    if texture_type == "image":
        return scene.Texture("image", path=reader.string("path"))

    raise error_invalid_field_value(
        "texture", "type",
        f"'{texture_type}' is not one of {', '.join(scene.TEXTURE_TYPES)}", span,
    )


def bind_material(reader: FieldReader) -> scene.Material:
    """Read the optional `material` sub-dictionary of an object."""
    fields = reader.dictionary("material", None)
    if fields is None:
        return scene.Material()

    material = FieldReader(f"{reader.kind} material", fields, reader.span)
    texture = material.dictionary("texture", None)

    return scene.Material(
        texture=bind_texture(texture, reader.span) if texture is not None else scene.Texture(),
        reflectiveness=material.fraction("reflectiveness", 0.0),
        transparency=material.fraction("transparency", 0.0),
        ior=material.number("ior", 1.5),
        emissivity=material.number("emissivity", 0.0),
    )


# =============================================================================
# Object kinds
# =============================================================================

def _bind_camera(r: FieldReader) -> scene.Camera:
    return scene.Camera(
        vw=r.integer("vw", 300),
        vh=r.integer("vh", 200),
        origin=r.vector("origin", scene.ORIGIN),
        yaw=r.number("yaw", 0.0),
        pitch=r.number("pitch", 0.0),
        fov=r.number("fov", 60.0),
    )


def _bind_scene_options(r: FieldReader) -> scene.SceneOptions:
    return scene.SceneOptions(
        max_ray_depth=r.integer("max_ray_depth", 4),
        ambient=r.color("ambient", scene.DEFAULT_AMBIENT),
    )


def _bind_skybox(r: FieldReader) -> scene.Skybox:
    skybox_type = r.string("type")
    if skybox_type == "normal":
        return scene.Skybox("normal")
    if skybox_type == "solid":
        return scene.Skybox("solid", color=r.color("color"))
    if skybox_type == "cubemap":
        return scene.Skybox("cubemap", image=r.string("image"))
    raise error_invalid_field_value(
        r.kind, "type", f"'{skybox_type}' is not one of {', '.join(scene.SKYBOX_TYPES)}", r.span
    )


def _bind_aabb(r: FieldReader) -> scene.Aabb:
    return scene.Aabb(
        position=r.vector("position"),
        size=r.vector("size"),
        material=bind_material(r),
    )


def _bind_sphere(r: FieldReader) -> scene.Sphere:
    return scene.Sphere(
        position=r.vector("position"),
        radius=r.number("radius"),
        material=bind_material(r),
    )


def _bind_plane(r: FieldReader) -> scene.Plane:
    return scene.Plane(
        origin=r.vector("origin"),
        normal=r.direction("normal", scene.UP),
        uv_wrap=r.number("uv_wrap", 1.0),
        material=bind_material(r),
    )


def _mesh_geometry(r: FieldReader):
    """Inline vertices as an (N, 3) array plus (M, 3) triangle indices."""
    verts = r.array("verts")
    for i, item in enumerate(verts):
        if item.kind != ValueKind.VECTOR:
            raise error_field_type(r.kind, f"verts[{i}]", "a vector", item.kind_name, r.span)
    vertices = scene.readonly_array([v.data.as_tuple() for v in verts], float, (-1, 3))

    if not r.has("tris"):
        if len(verts) % 3 != 0:
            raise error_invalid_field_value(
                r.kind, "verts",
                f"{len(verts)} vertices do not form whole triangles without 'tris'", r.span,
            )
        triangles = scene.readonly_array(range(len(verts)), int, (-1, 3))
        return vertices, triangles

    tris = r.array("tris")
    indices = []
    for i, item in enumerate(tris):
        if item.kind != ValueKind.NUMBER:
            raise error_field_type(r.kind, f"tris[{i}]", "a number", item.kind_name, r.span)
        index = item.data
        if not float(index).is_integer() or not 0 <= index < len(verts):
            raise error_invalid_field_value(
                r.kind, "tris", f"index {to_display(item)} is not a vertex index", r.span
            )
        indices.append(int(index))
    if len(indices) % 3 != 0:
        raise error_invalid_field_value(
            r.kind, "tris", f"{len(indices)} indices do not form whole triangles", r.span
        )
    triangles = scene.readonly_array(indices, int, (-1, 3))
    return vertices, triangles


def _bind_mesh(r: FieldReader) -> scene.Mesh:
    # `obj` is the older spelling of the file path field
    path_field = "obj" if r.has("obj") and not r.has("mesh") else "mesh"
    r.exclusive(path_field, "verts")
    r.exclusive("rotate_xyz", "rotate_zyx")

    path = vertices = triangles = None
    if r.has(path_field):
        path = r.string(path_field)
    else:
        vertices, triangles = _mesh_geometry(r)

    return scene.Mesh(
        path=path,
        vertices=vertices,
        triangles=triangles,
        position=r.vector("position", scene.ORIGIN),
        scale=r.number("scale", 1.0),
        rotate_xyz=r.vector("rotate_xyz", None),
        rotate_zyx=r.vector("rotate_zyx", None),
        material=bind_material(r),
    )


def _bind_point_light(r: FieldReader) -> scene.PointLight:
    return scene.PointLight(
        position=r.vector("position"),
        color=r.color("color", scene.WHITE),
        intensity=r.number("intensity", 6.0),
        specular_power=r.integer("specular_power", 32),
        specular_strength=r.number("specular_strength", 0.7),
        max_distance=r.number("max_distance", 50.0),
    )


def _bind_sun(r: FieldReader) -> scene.Sun:
    return scene.Sun(
        vector=r.direction("vector"),
        color=r.color("color", scene.WHITE),
        intensity=r.number("intensity", 1.0),
        specular_power=r.integer("specular_power", 32),
        specular_strength=r.number("specular_strength", 0.5),
        shadows=r.boolean("shadows", True),
        shadow_coefficient=r.number("shadow_coefficient", 0.5),
    )


def _bind_area_light(r: FieldReader) -> scene.AreaLight:
    surface_type = r.string("surface")
    if surface_type == "sphere":
        surface = scene.SphereSurface(r.vector("position"), r.number("radius"))
    elif surface_type == "rectangle":
        surface = scene.RectangleSurface(
            tuple(r.vector(corner) for corner in ("c00", "c01", "c10", "c11"))
        )
    else:
        raise error_invalid_field_value(
            r.kind, "surface", f"'{surface_type}' is not one of sphere, rectangle", r.span
        )

    return scene.AreaLight(
        surface=surface,
        color=r.color("color", scene.WHITE),
        intensity=r.number("intensity", 6.0),
        specular_power=r.integer("specular_power", 32),
        specular_strength=r.number("specular_strength", 0.7),
        iterations=r.integer("iterations", 4),
        max_distance=r.number("max_distance", 50.0),
    )


BINDERS: Dict[str, Callable[[FieldReader], scene.SceneObject]] = {
    "camera": _bind_camera,
    "scene": _bind_scene_options,
    "skybox": _bind_skybox,
    "aabb": _bind_aabb,
    "mesh": _bind_mesh,
    "plane": _bind_plane,
    "sphere": _bind_sphere,
    "point_light": _bind_point_light,
    "sun": _bind_sun,
    "area_light": _bind_area_light,
}


def bind(kind: str, fields: Union[Mapping[str, Value], Value],
         span: Optional[SourceSpan] = None) -> scene.SceneObject:
    """
    Bind one declaration to its scene entity.

    Args:
        kind: Object kind as written (aliases such as `box` are accepted)
        fields: Field mapping, or a Dictionary value
        span: Declaration position, used in error messages

    Raises:
        UnknownObjectError: kind is not a scene object
        MissingFieldError: a required field is absent
        FieldTypeError: a field holds the wrong kind of value
        ConflictingFieldsError: mutually exclusive fields are both present
        BindError: a field value is of the right kind but not allowed
    """
    if isinstance(fields, Value):
        if fields.kind != ValueKind.DICTIONARY:
            raise error_field_type(kind, "(body)", "a dictionary", fields.kind_name, span)
        fields = fields.data

    binder = BINDERS.get(canonical_kind(kind))
    if binder is None:
        raise error_unknown_object(kind, span)
    return binder(FieldReader(canonical_kind(kind), fields, span))


def bind_scene(accumulator: SceneAccumulator, time: float = 0.0) -> scene.BoundScene:
    """
    Bind every declaration in an evaluated accumulator.

    Singletons that were never declared take their defaults.
    """
    def singleton(declared, default):
        if declared is None:
            return default
        return bind(declared.kind, declared.fields, declared.span)

    objects = []
    lights = []
    for declared in accumulator:
        entity = bind(declared.kind, declared.fields, declared.span)
        if isinstance(entity, scene.LIGHT_TYPES):
            lights.append(entity)
        elif isinstance(entity, scene.GEOMETRY_TYPES):
            objects.append(entity)
        else:
            # camera, scene and skybox are always routed to the singleton slots
            raise error_unknown_object(declared.kind, declared.span)

    bound = scene.BoundScene(
        camera=singleton(accumulator.camera, scene.Camera()),
        options=singleton(accumulator.scene, scene.SceneOptions()),
        skybox=singleton(accumulator.skybox, scene.Skybox()),
        objects=tuple(objects),
        lights=tuple(lights),
        time=time,
    )
    logger.debug("bound %d objects and %d lights", len(objects), len(lights))
    return bound
