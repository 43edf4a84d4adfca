import json

from vibe_config import DEFAULTS, load_config, save_config, setting


class TestConfig:
    def test_missing_file(self, tmp_path):
        assert load_config(str(tmp_path / "cfg.json")) == {}

    def test_save_then_load(self, tmp_path):
        path = str(tmp_path / "cfg.json")
        save_config({"refresh_interval": 300}, path)
        assert load_config(path) == {"refresh_interval": 300}
        assert not (tmp_path / "cfg.json.tmp").exists()

    def test_corrupt_file_moved_aside(self, tmp_path):
        path = tmp_path / "cfg.json"
        path.write_text("{oops")
        assert load_config(str(path)) == {}
        assert not path.exists()
        assert (tmp_path / "cfg.json.bak").read_text() == "{oops"

    def test_non_object_ignored(self, tmp_path):
        path = tmp_path / "cfg.json"
        path.write_text(json.dumps([1, 2]))
        assert load_config(str(path)) == {}

    def test_setting_falls_back_to_default(self):
        assert setting({}, "refresh_interval") == DEFAULTS["refresh_interval"] == 60
        assert setting({"bar_width": 20}, "bar_width") == 20
