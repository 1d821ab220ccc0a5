"""HTML shells loaded into the headless browser.

The shells are fixed markup. Per-request values enter through exactly two
placeholders: ``$script_url`` (attribute-escaped) and ``$payload`` (a JSON
object with ``<``, ``>`` and ``&`` escaped, so diagram source can never close
the surrounding ``<script>`` element).

Both pages report failure by appending ``<pre id="render-error"
class="error-text">`` with the library's message.
"""

import html
import json
from string import Template

ERROR_MARKER_JS = """
  function fail(message) {
    if (document.getElementById('render-error')) { return; }
    var marker = document.createElement('pre');
    marker.id = 'render-error';
    marker.className = 'error-text';
    marker.textContent = String(message || 'Unknown syntax error');
    document.body.appendChild(marker);
  }
  function describe(err) {
    if (!err) { return null; }
    return err.message || err.str || String(err);
  }
  window.addEventListener('error', function (event) { fail(event.message); });
  window.addEventListener('unhandledrejection', function (event) { fail(describe(event.reason)); });
"""

MERMAID_DOCUMENT = Template("""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <script src="$script_url"></script>
  <style>
    body { margin: 0; padding: 20px; background: #ffffff; }
    .diagram { display: inline-block; }
  </style>
</head>
<body>
  <div class="diagram">
    <div class="mermaid" id="mermaid-container"></div>
  </div>
  <script>
  (function () {
    var payload = $payload;
""" + ERROR_MARKER_JS + """
    if (payload.backgroundColor) { document.body.style.background = payload.backgroundColor; }
    if (typeof mermaid === 'undefined') { fail('Mermaid library failed to load'); return; }
    mermaid.initialize(payload.config);
    mermaid.render('rendered-diagram', payload.source).then(function (result) {
      document.getElementById('mermaid-container').innerHTML = result.svg;
    }).catch(function (err) { fail(describe(err)); });
  })();
  </script>
</body>
</html>
""")

PLOTLY_DOCUMENT = Template("""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <script src="$script_url"></script>
  <style>
    body { margin: 0; padding: 20px; background: #ffffff; font-family: Arial, sans-serif; }
    .chart-container { display: inline-block; min-width: 700px; min-height: 450px; }
    #plotly-chart { width: 100%; height: 100%; }
  </style>
</head>
<body>
  <div class="chart-container">
    <div id="plotly-chart"></div>
  </div>
  <script>
  (function () {
    var payload = $payload;
""" + ERROR_MARKER_JS + """
    if (payload.backgroundColor) { document.body.style.background = payload.backgroundColor; }
    var container = document.querySelector('.chart-container');
    if (payload.width) { container.style.width = payload.width + 'px'; }
    if (payload.height) { container.style.height = payload.height + 'px'; }
    if (typeof Plotly === 'undefined') { fail('Plotly library failed to load'); return; }
    try {
      var result = new Function('config', 'Plotly', payload.source)(payload.config, Plotly);
      if (result && typeof result.then === 'function') {
        result.then(null, function (err) { fail(describe(err)); });
      }
    } catch (err) {
      fail(describe(err));
    }
  })();
  </script>
</body>
</html>
""")

# Evaluated by poll_until: null while rendering, a terminal state otherwise.
STATUS_EXPRESSION = Template("""() => {
  const error = document.getElementById('render-error') || document.querySelector('.error-text');
  if (error) { return { error: error.textContent }; }
  if (document.querySelector('$done_selector')) { return { ready: true }; }
  return null;
}""")


def script_payload(payload: dict) -> str:
    """Serialize ``payload`` as a JSON literal safe inside a <script> element."""
    return (
        json.dumps(payload)
        .replace("<", "\\u003c")
        .replace(">", "\\u003e")
        .replace("&", "\\u0026")
    )


def render_document(template: Template, script_url: str, payload: dict) -> str:
    return template.substitute(
        script_url=html.escape(script_url, quote=True),
        payload=script_payload(payload),
    )


def status_expression(done_selector: str) -> str:
    return STATUS_EXPRESSION.substitute(done_selector=done_selector)
