from adgrouper.scrape import html_to_markdown, truncate_text

PAGE = """
<html>
  <head><title>Shoe Shop</title><style>body { color: red; }</style></head>
  <body>
    <header><a href="/">Logo</a></header>
    <nav><ul><li>Home</li><li>About</li></ul></nav>
    <div class="cookie-banner">We use cookies</div>
    <main>
      <h1>Running Shoes</h1>
      <p>Lightweight shoes for <b>every</b> runner.</p>
      <img src="shoe.png" alt="A shoe">
      <h2>Why us</h2>
      <ul>
        <li>Free returns</li>
        <li>Fast   shipping</li>
      </ul>
      <script>trackVisit();</script>
    </main>
    <footer>Copyright Shoe Shop</footer>
  </body>
</html>
"""


def test_html_to_markdown_keeps_main_content_only():
    text = html_to_markdown(PAGE)

    assert text.splitlines()[0] == "# Running Shoes"
    assert "Lightweight shoes for every runner." in text
    assert "## Why us" in text
    assert "- Free returns" in text
    assert "- Fast shipping" in text
    for dropped in ("Logo", "Home", "cookies", "trackVisit", "Copyright", "color: red"):
        assert dropped not in text


def test_html_to_markdown_falls_back_to_body():
    html = "<html><body><nav>Menu</nav><p>First</p><p>Second</p></body></html>"

    assert html_to_markdown(html) == "First\nSecond"


def test_html_to_markdown_collapses_blank_lines():
    html = "<main><p>One</p><div></div><div></div><p>Two</p></main>"

    assert "\n\n\n" not in html_to_markdown(html)


def test_nested_lists_are_indented_under_their_parent():
    html = "<ul><li>Outer<ul><li>Inner<ol><li>Deepest</li></ol></li></ul></li><li>Sibling</li></ul>"

    assert html_to_markdown(html) == "- Outer\n  - Inner\n    - Deepest\n- Sibling"


def test_nested_list_in_formatted_markup():
    html = """
    <main>
      <ul>
        <li>Shoes
          <ul>
            <li>Running</li>
            <li>Trail</li>
          </ul>
        </li>
      </ul>
    </main>
    """

    assert html_to_markdown(html) == "- Shoes\n  - Running\n  - Trail"


def test_empty_page_gives_empty_text():
    assert html_to_markdown("<html><body><script>x()</script></body></html>") == ""


def test_truncate_text_adds_marker():
    text = "a" * 120

    assert truncate_text(text, limit=200) == text
    truncated = truncate_text(text, limit=100)
    assert truncated.startswith("a" * 100)
    assert truncated.endswith("\n\n[... content truncated ...]")
    assert len(truncated) == 100 + len("\n\n[... content truncated ...]")


def test_truncate_text_reads_limit_from_environment(monkeypatch):
    monkeypatch.setenv("MAX_PAGE_TEXT_CHARS", "1500")

    assert truncate_text("b" * 2000) == "b" * 1500 + "\n\n[... content truncated ...]"
