"""Tests for utils.folder_naming."""

import os

import pytest

from utils.folder_naming import _check_containment, extract_project_name, get_output_dir, slugify


class TestSlugify:
    def test_basic(self):
        assert slugify("Todo List App") == "todo_list_app"
        assert slugify("Todo List App", sep="-") == "todo-list-app"

    def test_punctuation(self):
        assert slugify("  Hello, World!  ") == "hello_world"


class TestExtractProjectName:
    def test_drops_filler(self):
        assert extract_project_name("Build me a todo list app") == "todo_list"

    def test_first_three_words(self):
        assert extract_project_name("recipe sharing platform with ratings") == "recipe_sharing_platform"

    def test_only_filler(self):
        assert extract_project_name("build an app") == "project"


class TestGetOutputDir:
    def test_platform_dir(self, tmp_path):
        path = get_output_dir("mobile", "photo journal", base_dir=str(tmp_path))
        assert path == os.path.join(str(tmp_path), "mobile_apps", "photo_journal")

    def test_dedup(self, tmp_path):
        first = get_output_dir("web", "todo list", base_dir=str(tmp_path))
        os.makedirs(first)
        assert get_output_dir("web", "todo list", base_dir=str(tmp_path)) == first + "_2"

    def test_containment(self, tmp_path):
        with pytest.raises(ValueError):
            _check_containment(str(tmp_path / ".." / "elsewhere"), str(tmp_path))
