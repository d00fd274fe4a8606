"""
Tests for configuration loading, the pipeline helpers and the CLI.
"""

import json
from pathlib import Path

import pytest
import yaml

from raysdl import (
    SdlConfig, config_from_dict, load_config, ConfigError,
    load_scene, load_frames, load_scene_file, compile_source, evaluate_program,
    LexerError, ParserError, UndefinedVariableError,
)
from raysdl.__main__ import main

EXAMPLES_DIR = Path(__file__).resolve().parent.parent / "examples"


ORBIT = """
camera { vw: 320, vh: 240 }
let r = 4
sphere { position: <cos(t) * r, 0, sin(t) * r>, radius: 0.5 }
point_light { position: <0, 10, 0> }
"""


class TestConfig:
    """Test SdlConfig construction and validation."""

    def test_defaults(self):
        """Defaults from an empty mapping."""
        config = config_from_dict({})
        assert config == SdlConfig()
        assert config.time_variable == "t"
        assert config.max_call_depth == 50

    def test_all_fields(self):
        """Every key is read."""
        config = config_from_dict({
            "time_variable": "frame_time",
            "time": 2,
            "globals": {"count": 3, "name": "demo"},
            "random_seed": 5,
            "noise_seed": 9,
            "max_loop_iterations": 100,
            "max_call_depth": None,
        })
        assert config.time_variable == "frame_time"
        assert config.time == 2.0
        assert config.globals == {"count": 3, "name": "demo"}
        assert config.random_seed == 5
        assert config.noise_seed == 9
        assert config.max_loop_iterations == 100
        assert config.max_call_depth is None

    @pytest.mark.parametrize("data", [
        {"colour": 1},
        {"time_variable": "not valid"},
        {"time": "soon"},
        {"globals": [1, 2]},
        {"globals": {"2x": 1}},
        {"random_seed": 1.5},
        {"max_call_depth": 0},
        {"noise_seed": None},
        {"max_loop_iterations": True},
    ])
    def test_invalid(self, data):
        """Bad keys and values raise ConfigError."""
        with pytest.raises(ConfigError) as exc_info:
            config_from_dict(data)
        assert exc_info.value.code == "E601"

    def test_not_a_mapping(self):
        """A YAML list is not a configuration."""
        with pytest.raises(ConfigError):
            config_from_dict([1, 2])

    def test_with_time(self):
        """with_time copies everything but the time."""
        config = SdlConfig(random_seed=4, globals={"a": 1})
        later = config.with_time(3)
        assert later.time == 3.0
        assert later.random_seed == 4
        assert config.time == 0.0

    def test_load_config_file(self, tmp_path):
        """Configuration is read from YAML."""
        path = tmp_path / "render.yaml"
        path.write_text(yaml.safe_dump({"random_seed": 7, "globals": {"rings": 2}}))
        config = load_config(path)
        assert config.random_seed == 7
        assert config.globals == {"rings": 2}

    def test_load_empty_file(self, tmp_path):
        """An empty file gives the defaults."""
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == SdlConfig()

    def test_load_invalid_yaml(self, tmp_path):
        """YAML syntax errors are reported as ConfigError with the file name."""
        path = tmp_path / "broken.yaml"
        path.write_text("random_seed: [1, 2\n")
        with pytest.raises(ConfigError) as exc_info:
            load_config(path)
        assert "broken.yaml" in str(exc_info.value)

    def test_load_missing_file(self, tmp_path):
        """A missing file is a ConfigError."""
        with pytest.raises(ConfigError):
            load_config(tmp_path / "nope.yaml")


class TestPipeline:
    """Test the source-to-scene helpers."""

    def test_globals_are_visible(self):
        """Configured globals are bound before the program runs."""
        config = SdlConfig(globals={"n": 3, "offsets": [0, 1, 2]})
        scene = load_scene(
            "for i in 0 to n { sphere { position: <offsets[i], 0, 0>, radius: 1 } }", config
        )
        assert [s.position.x for s in scene.objects] == [0.0, 1.0, 2.0]

    def test_time_variable(self):
        """The time argument overrides the configured time."""
        scene = load_scene("sphere { position: <t, 0, 0>, radius: 1 }", SdlConfig(time=1.0), time=4)
        assert scene.objects[0].position.x == 4.0
        assert scene.time == 4.0

    def test_custom_time_variable(self):
        """The time variable's name is configurable."""
        config = SdlConfig(time_variable="frame", time=2.0)
        scene = load_scene("sphere { position: <frame, 0, 0>, radius: 1 }", config)
        assert scene.objects[0].position.x == 2.0
        with pytest.raises(UndefinedVariableError):
            load_scene("let x = t", config)

    def test_load_frames(self):
        """One independent scene per frame time."""
        scenes = list(load_frames(ORBIT, [0.0, 1.0, 2.0]))
        assert [s.time for s in scenes] == [0.0, 1.0, 2.0]
        assert all(len(s.objects) == 1 and len(s.lights) == 1 for s in scenes)
        assert scenes[0].objects[0].position.x == pytest.approx(4.0)
        assert scenes[0].objects[0] != scenes[1].objects[0]

    def test_load_frames_is_lazy(self):
        """Frames are evaluated on demand; a syntax error surfaces on the first frame."""
        frames = load_frames(ORBIT, [0.0])
        assert next(frames).time == 0.0
        with pytest.raises(ParserError):
            next(load_frames("let = 1", [0.0]))

    def test_evaluate_program(self):
        """The stage functions can be called separately."""
        program = compile_source("sphere { position: <0, 0, 0>, radius: 1 }")
        accumulator = evaluate_program(program)
        assert accumulator.frozen
        assert len(accumulator) == 1

    def test_load_scene_file(self, tmp_path):
        """Scenes load from UTF-8 files and errors name the file."""
        good = tmp_path / "orbit.sdl"
        good.write_text(ORBIT, encoding="utf-8")
        assert len(load_scene_file(good).objects) == 1

        bad = tmp_path / "bad.sdl"
        bad.write_text("let x = @\n", encoding="utf-8")
        with pytest.raises(LexerError) as exc_info:
            load_scene_file(bad)
        assert "bad.sdl" in str(exc_info.value)


class TestCli:
    """Test the command line entry point."""

    @pytest.fixture
    def scene_file(self, tmp_path):
        path = tmp_path / "orbit.sdl"
        path.write_text(ORBIT, encoding="utf-8")
        return path

    def test_check(self, scene_file, capsys):
        """check summarises a valid scene."""
        assert main(["check", str(scene_file)]) == 0
        out = capsys.readouterr().out
        assert "OK: orbit.sdl" in out
        assert "1 object(s), 1 light(s)" in out
        assert "camera" in out

    def test_check_reports_errors(self, tmp_path, capsys):
        """Errors go to stderr with their code; the exit status is 1."""
        path = tmp_path / "broken.sdl"
        path.write_text("sphere { radius: 1 }\n", encoding="utf-8")
        assert main(["check", str(path)]) == 1
        assert "E501" in capsys.readouterr().err

    def test_missing_file(self, tmp_path, capsys):
        """A missing file is reported."""
        assert main(["check", str(tmp_path / "absent.sdl")]) == 1
        assert "File not found" in capsys.readouterr().err

    def test_dump_json(self, scene_file, capsys):
        """dump --format json prints the bound scene."""
        assert main(["dump", str(scene_file), "--time", "0", "--format", "json"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["camera"]["vw"] == 320
        assert data["objects"][0]["kind"] == "sphere"
        assert data["lights"][0]["kind"] == "point_light"

    def test_dump_yaml(self, scene_file, capsys):
        """YAML is the default dump format."""
        assert main(["dump", str(scene_file)]) == 0
        data = yaml.safe_load(capsys.readouterr().out)
        assert data["objects"][0]["radius"] == 0.5

    def test_tokens(self, tmp_path, capsys):
        """tokens prints one token per line with its position."""
        path = tmp_path / "one.sdl"
        path.write_text("let x = 1", encoding="utf-8")
        assert main(["tokens", str(path)]) == 0
        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == 5
        assert lines[0].startswith("1:1\t")

    def test_ast(self, scene_file, capsys):
        """ast prints the syntax tree."""
        assert main(["ast", str(scene_file)]) == 0
        assert "ObjectDecl" in capsys.readouterr().out

    def test_config_option(self, tmp_path, capsys):
        """--config supplies globals."""
        config = tmp_path / "cfg.yaml"
        config.write_text(yaml.safe_dump({"globals": {"n": 2}}))
        source = tmp_path / "row.sdl"
        source.write_text("for i in 0 to n { sphere { position: <i, 0, 0>, radius: 1 } }")
        assert main(["--config", str(config), "check", str(source)]) == 0
        assert "2 object(s)" in capsys.readouterr().out

    def test_bad_config_option(self, tmp_path, capsys):
        """An invalid configuration file fails cleanly."""
        config = tmp_path / "cfg.yaml"
        config.write_text("unknown_key: 1\n")
        source = tmp_path / "empty.sdl"
        source.write_text("")
        assert main(["--config", str(config), "check", str(source)]) == 1
        assert "E601" in capsys.readouterr().err


class TestExampleScenes:
    """The scenes shipped in examples/ must stay valid."""

    @pytest.mark.parametrize("path", sorted(EXAMPLES_DIR.glob("*.sdl")), ids=lambda p: p.name)
    def test_example_loads(self, path):
        """Each example binds at two different times."""
        first = load_scene_file(path, SdlConfig(random_seed=0), time=0.0)
        second = load_scene_file(path, SdlConfig(random_seed=0), time=1.0)
        assert first.objects
        assert first.lights
        assert len(first.objects) == len(second.objects)

    def test_orbit_moves_with_time(self):
        """The animated example changes between frames."""
        path = EXAMPLES_DIR / "orbit.sdl"
        frames = list(load_frames(path.read_text(encoding="utf-8"), [0.0, 0.5]))
        assert frames[0].objects[0].position != frames[1].objects[0].position
