from __future__ import annotations

# Rendered with flask.render_template_string, which autoescapes.
PASTE_PAGE = """<html>
  <body>
    <pre>{{ content }}</pre>
  </body>
</html>
"""

TEST_FORM_PAGE = """<h2>Create Paste (Test Page)</h2>
<form method="POST" action="{{ action }}">
  <textarea name="content" rows="5" cols="40"></textarea><br/><br/>
  <input type="number" name="max_views" min="0" placeholder="Max Views (optional)" /><br/><br/>
  <input type="number" name="ttl_seconds" min="1" placeholder="TTL seconds (optional)" /><br/><br/>
  <button type="submit">Create Paste</button>
</form>
"""
