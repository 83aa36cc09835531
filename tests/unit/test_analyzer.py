"""Tests for moonlight.analysis -- tree-sitter based C# structure."""

from moonlight.analysis import analyze_file, analyze_source, validate_syntax


def by_name(items, name):
    return next(item for item in items if item.name == name)


class TestSampleService:
    def test_class_found_with_doc(self, sample_source):
        analysis = analyze_source(sample_source)
        assert analysis.parsed_ok is True
        cls = by_name(analysis.classes, "WidgetService")
        assert cls.kind == "class"
        assert cls.accessibility == "public"
        assert cls.doc_present is True
        assert cls.first_line == 9

    def test_methods(self, sample_source):
        cls = analyze_source(sample_source).classes[0]
        assert [m.name for m in cls.methods] == ["Count", "Reset", "Helper"]

        count = by_name(cls.methods, "Count")
        assert count.accessibility == "public"
        assert count.return_type == "int"
        assert [(p.name, p.type) for p in count.parameters] == [("filter", "string"), ("exact", "bool")]
        assert count.doc_present is False
        assert (count.first_line, count.last_line) == (23, 26)

        assert by_name(cls.methods, "Reset").doc_present is True
        assert by_name(cls.methods, "Helper").accessibility == "private"

    def test_fields_properties_events(self, sample_source):
        cls = analyze_source(sample_source).classes[0]
        retries = by_name(cls.fields, "_retries")
        assert retries.accessibility == "private"
        assert retries.is_readonly is True
        max_widgets = by_name(cls.fields, "MaxWidgets")
        assert max_widgets.is_const is True
        assert max_widgets.type == "int"

        name = by_name(cls.properties, "Name")
        assert name.type == "string"
        assert name.has_getter and name.has_setter

        changed = by_name(cls.events, "Changed")
        assert changed.type == "EventHandler"
        assert changed.first_line == 16

    def test_usings(self, sample_source):
        usings = analyze_source(sample_source).usings
        assert [(u.namespace, u.line) for u in usings] == [("System", 1), ("System.Text", 2)]


class TestAccessibilityDefaults:
    def test_top_level_type_is_internal(self):
        analysis = analyze_source("class Plain { void M() {} }")
        cls = analysis.classes[0]
        assert cls.accessibility == "internal"
        assert cls.methods[0].accessibility == "private"

    def test_interface_members_are_public(self):
        analysis = analyze_source("public interface IThing { void Run(); string Name { get; } }")
        iface = analysis.classes[0]
        assert iface.kind == "interface"
        assert iface.methods[0].accessibility == "public"
        assert iface.properties[0].accessibility == "public"

    def test_combined_modifiers(self):
        source = "public class A { protected internal void B() {} private protected void C() {} }"
        methods = analyze_source(source).classes[0].methods
        assert by_name(methods, "B").accessibility == "protected internal"
        assert by_name(methods, "C").accessibility == "private protected"

    def test_nested_type_reported_separately(self):
        source = "public class Outer { class Inner { public void M() {} } }"
        classes = analyze_source(source).classes
        assert [c.name for c in classes] == ["Outer", "Inner"]
        assert by_name(classes, "Inner").accessibility == "private"
        assert by_name(classes, "Outer").methods == []


class TestDeclarationSpans:
    def test_attribute_included_in_span(self):
        source = "public class A\n{\n    /// <summary>x</summary>\n    [Obsolete]\n    public void M()\n    {\n    }\n}\n"
        method = analyze_source(source).classes[0].methods[0]
        assert method.first_line == 4
        assert method.doc_present is True

    def test_regular_comment_is_not_documentation(self):
        source = "public class A\n{\n    // note\n    public void M() {}\n}\n"
        assert analyze_source(source).classes[0].methods[0].doc_present is False

    def test_file_scoped_namespace(self):
        source = "namespace Acme;\n\npublic class Point { }\n\npublic struct Size { public int W; }\n"
        classes = analyze_source(source).classes
        assert {c.name: c.kind for c in classes} == {"Point": "class", "Size": "struct"}

    def test_multiple_declarators(self):
        fields = analyze_source("public class A { public int X, Y; }").classes[0].fields
        assert [f.name for f in fields] == ["X", "Y"]


class TestParseFailures:
    def test_broken_source(self):
        analysis = analyze_source("public class A { void M( }")
        assert analysis.parsed_ok is False
        assert analysis.parse_errors
        assert analysis.classes == []

    def test_unreadable_file(self, tmp_path):
        analysis = analyze_file(tmp_path / "missing.cs")
        assert analysis.parsed_ok is False

    def test_file_with_bom(self, tmp_path):
        path = tmp_path / "A.cs"
        path.write_bytes(b"\xef\xbb\xbfpublic class A { }\n")
        analysis = analyze_file(path)
        assert analysis.parsed_ok is True
        assert analysis.classes[0].first_line == 1


class TestValidateSyntax:
    def test_valid(self):
        assert validate_syntax("public class A { public int X { get; set; } }") is True

    def test_invalid(self):
        assert validate_syntax("public class A { public int X { get; set; }") is False

    def test_empty(self):
        assert validate_syntax("   ") is False
