"""In-page scripts used by the scroll settle variants."""

from __future__ import annotations

SCROLL_METRICS_JS = """
() => {
  const doc = document.documentElement || {};
  const body = document.body || {};
  const scrollY = window.scrollY || doc.scrollTop || body.scrollTop || 0;
  const height = Math.max(doc.scrollHeight || 0, body.scrollHeight || 0);
  return {
    scrollY: scrollY,
    scrollHeight: height,
    innerHeight: window.innerHeight || doc.clientHeight || 0,
  };
}
"""

# Each technique takes {target, delta}; "target" is an absolute offset for
# top/bottom and "delta" a relative step for next.
SCROLL_TECHNIQUES_JS = {
    "window": """
(args) => {
  if (args.delta !== null && args.delta !== undefined) window.scrollBy(0, args.delta);
  else window.scrollTo(0, args.target);
}
""",
    "document_element": """
(args) => {
  const el = document.documentElement;
  if (!el) return;
  if (args.delta !== null && args.delta !== undefined) el.scrollTop += args.delta;
  else el.scrollTop = args.target;
}
""",
    "body": """
(args) => {
  const el = document.body;
  if (!el) return;
  if (args.delta !== null && args.delta !== undefined) el.scrollTop += args.delta;
  else el.scrollTop = args.target;
}
""",
}
