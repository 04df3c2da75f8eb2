"""启动脚本模板与入口 HTML 测试"""

from __future__ import annotations

from qxtool.core.compile.loader import render_index_html, substitute_template


class TestSubstituteTemplate:
    def test_json_value_indented(self) -> None:
        text = substitute_template("environment: %{EnvSettings}", {"EnvSettings": {"a": 1}})
        assert text == 'environment: {\n  "a": 1\n}'

    def test_several_tokens_on_one_line(self) -> None:
        text = substitute_template(
            "boot: %{Boot}, inline: %{BootIsInline}", {"Boot": "boot", "BootIsInline": False},
        )
        assert text == 'boot: "boot", inline: false'

    def test_unknown_token_removed(self) -> None:
        assert substitute_template("x = %{Nope};", {}) == "x = ;"

    def test_raw_token_not_serialised(self) -> None:
        text = substitute_template("%{PreBootCode}", {"PreBootCode": "var a = 1;"})
        assert text == "var a = 1;"

    def test_value_containing_token_is_not_expanded(self) -> None:
        text = substitute_template("%{Boot}", {"Boot": "%{Boot}"})
        assert text == '"%{Boot}"'

    def test_delay_defer_forced_true(self) -> None:
        text = substitute_template("a: 1,\n  delayDefer: false,\nother: false", {})
        assert text == "a: 1,\n  delayDefer: true,\nother: false"


class TestRenderIndexHtml:
    def test_default_page(self) -> None:
        html = render_index_html(None, "boot.js", "My App")
        assert "<title>My App</title>" in html
        assert html.index('src="boot.js"') < html.index("</head>")

    def test_custom_template_without_head(self) -> None:
        html = render_index_html("<html><body>x</body></html>", "app/boot.js", "t")
        assert html.index('src="app/boot.js"') < html.index("</body>")

    def test_template_without_anchor(self) -> None:
        html = render_index_html("plain", "boot.js", "t")
        assert html.startswith("plain")
        assert html.rstrip().endswith("</script>")
