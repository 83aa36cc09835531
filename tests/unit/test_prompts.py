"""Tests for moonlight.workloads.prompts -- template lookup and rendering."""

import pytest

from moonlight.workloads.prompts import BUILTIN_PROMPTS, PromptService, normalize_model_name, render


class TestNormalizeModelName:
    @pytest.mark.parametrize(
        "name,family",
        [
            ("codellama:13b-instruct", "codellama"),
            ("deepseek-coder:6.7b", "deepseek"),
            ("Qwen_Coder", "qwencoder"),
            ("", "default"),
            ("   ", "default"),
        ],
    )
    def test_family(self, name, family):
        assert normalize_model_name(name) == family


class TestRender:
    def test_literal_replacement(self):
        assert render("Hello {name}, {name}!", {"name": "Ada"}) == "Hello Ada, Ada!"

    def test_unknown_placeholders_stay(self):
        assert render("{a} {b}", {"a": "1"}) == "1 {b}"

    def test_braces_in_values_are_not_reinterpreted(self):
        assert render("{code}", {"code": "class A { }"}) == "class A { }"


class TestPromptService:
    def test_builtin_method_prompt(self, tmp_path):
        service = PromptService(tmp_path, model_name="codellama:13b")
        prompt = service.get_prompt("codedoc", "method", {"method": "public int Count() => 1;"})
        assert "public int Count() => 1;" in prompt
        assert "{method}" not in prompt

    def test_every_codedoc_kind_has_placeholder(self):
        for kind in ("method", "field", "property", "event", "class"):
            assert "{" + kind + "}" in BUILTIN_PROMPTS[("codedoc", kind)]

    def test_model_specific_file_wins(self, tmp_path):
        (tmp_path / "codedoc" / "codellama").mkdir(parents=True)
        (tmp_path / "codedoc" / "default").mkdir(parents=True)
        (tmp_path / "codedoc" / "codellama" / "method.txt").write_text("LLAMA {method}")
        (tmp_path / "codedoc" / "default" / "method.txt").write_text("DEFAULT {method}")
        service = PromptService(tmp_path, model_name="codellama:13b-instruct")
        assert service.get_prompt("codedoc", "method", {"method": "M"}) == "LLAMA M"

    def test_default_file_used_for_other_models(self, tmp_path):
        (tmp_path / "codedoc" / "default").mkdir(parents=True)
        (tmp_path / "codedoc" / "default" / "method.txt").write_text("DEFAULT {method}")
        service = PromptService(tmp_path, model_name="mistral:7b")
        assert service.get_prompt("codedoc", "method", {"method": "M"}) == "DEFAULT M"

    def test_custom_disabled_uses_builtin(self, tmp_path):
        (tmp_path / "codedoc" / "default").mkdir(parents=True)
        (tmp_path / "codedoc" / "default" / "method.txt").write_text("DEFAULT {method}")
        service = PromptService(tmp_path, enable_custom=False)
        assert service.get_template("codedoc", "method") == BUILTIN_PROMPTS[("codedoc", "method")]

    def test_unknown_operation(self, tmp_path):
        with pytest.raises(KeyError):
            PromptService(tmp_path).get_template("codedoc", "namespace")

    def test_build_fix_prompt(self, tmp_path):
        prompt = PromptService(tmp_path).get_prompt(
            "repair", "build-fix", {"filePath": "src/A.cs", "errors": "CS1002", "fileContent": "class A {"}
        )
        assert "src/A.cs" in prompt and "CS1002" in prompt and "class A {" in prompt
