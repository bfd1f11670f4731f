"""In-page breadth-first traversal that picks the visible leaf elements of a page."""

from __future__ import annotations

from .element_script import ELEMENT_FACTS_JS

ATOMIC_TAGS = ("IMG", "SVG", "SELECT")
COMPOSITE_TAGS = ("TABLE", "UL", "OL", "DL", "P", "BUTTON", "FORM", "FOOTER", "NAV")
INTERACTIVE_TAGS = ("A", "BUTTON", "INPUT", "TEXTAREA", "SELECT", "LABEL", "SPAN")
SKIPPED_TAGS = ("SCRIPT", "STYLE", "NOSCRIPT", "PUPPETEER-MOUSE-POINTER")

_TRAVERSAL_JS = r"""
  const ATOMIC = new Set(args.atomicTags);
  const COMPOSITE = new Set(args.compositeTags);
  const INTERACTIVE = new Set(args.interactiveTags);
  const SKIPPED = new Set(args.skippedTags);
  const NESTED_CONTROLS = 'a, button, input, select, textarea';

  function rootOf(el) {
    const root = el.getRootNode ? el.getRootNode() : null;
    return root && root.elementFromPoint ? root : el.ownerDocument;
  }

  function centerElement(el) {
    const rect = el.getBoundingClientRect();
    return rootOf(el).elementFromPoint(rect.x + rect.width / 2, rect.y + rect.height / 2);
  }

  function coversSelf(el) {
    const hit = centerElement(el);
    return !!hit && (hit === el || el.contains(hit) || hit === el.parentElement);
  }

  function fivePointMatches(el) {
    const rect = el.getBoundingClientRect();
    const root = rootOf(el);
    const points = [
      [rect.x + 1, rect.y + 1],
      [rect.x + rect.width - 1, rect.y + 1],
      [rect.x + 1, rect.y + rect.height - 1],
      [rect.x + rect.width - 1, rect.y + rect.height - 1],
      [rect.x + rect.width / 2, rect.y + rect.height / 2],
    ];
    let matches = 0;
    for (const [x, y] of points) {
      if (root.elementFromPoint(x, y) === el) matches++;
    }
    return matches;
  }

  function directText(el) {
    let text = '';
    el.childNodes.forEach((child) => {
      if (child.nodeType === Node.TEXT_NODE) text += child.textContent;
    });
    return text.trim();
  }

  function isVisible(el) {
    const style = window.getComputedStyle(el);
    if (style.display === 'none' || style.visibility === 'hidden' || parseFloat(style.opacity) === 0) return false;
    const rect = el.getBoundingClientRect();
    return rect.width > 0 && rect.height > 0;
  }

  // Textless links stretched over content steal elementFromPoint hits.
  const coverLinks = [];
  document.querySelectorAll('a').forEach((link) => {
    const rect = link.getBoundingClientRect();
    if (rect.x === 0 && rect.y === 0) return;
    if (!link.getAttribute('href') || directText(link) !== '') return;
    const visibleChild = Array.from(link.children).some((child) => isVisible(child));
    if (visibleChild || !coversSelf(link)) return;
    coverLinks.push([link, link.style.pointerEvents]);
    try {
      link.style.pointerEvents = 'none';
    } catch (e) {}
  });

  const containers = __scrollContainers(document);
  const captured = [];
  const capturedSet = new Set();
  const contexts = new Map();

  function capture(el, entry) {
    if (capturedSet.has(el)) return;
    capturedSet.add(el);
    captured.push(el);
    contexts.set(el, { offsetX: entry.ox, offsetY: entry.oy, inIframe: entry.inIframe, containers: containers });
  }

  const queue = [{ node: document.body, ox: 0, oy: 0, inIframe: false }];
  let head = 0;

  function descend(el, entry) {
    el.childNodes.forEach((child) => queue.push({ node: child, ox: entry.ox, oy: entry.oy, inIframe: entry.inIframe }));
    if (el.shadowRoot) {
      el.shadowRoot.childNodes.forEach((child) => queue.push({ node: child, ox: entry.ox, oy: entry.oy, inIframe: entry.inIframe }));
    }
  }

  let iterations = 0;
  let truncated = false;
  while (head < queue.length) {
    iterations++;
    if (iterations > args.maxIterations) {
      truncated = true;
      break;
    }
    const entry = queue[head++];
    const node = entry.node;
    if (!node) continue;

    if (node.nodeType === Node.TEXT_NODE) {
      if (node.textContent.trim() === '') continue;
      const parent = node.parentElement;
      if (!parent || centerElement(parent) !== parent) continue;
      if (capturedSet.has(parent)) continue;
      if (parent.parentElement && capturedSet.has(parent.parentElement)) continue;
      capture(parent, entry);
      continue;
    }
    if (node.nodeType !== Node.ELEMENT_NODE) continue;

    const el = node;
    const tag = el.tagName.toUpperCase();
    if (SKIPPED.has(tag)) continue;

    if (tag === 'IFRAME') {
      try {
        const doc = el.contentDocument || el.contentWindow.document;
        if (!doc || !doc.body) continue;
        const rect = el.getBoundingClientRect();
        queue.push({ node: doc.body, ox: entry.ox + rect.x, oy: entry.oy + rect.y, inIframe: true });
      } catch (e) {}
      continue;
    }

    const style = window.getComputedStyle(el);
    if (style.display === 'none' || style.visibility === 'hidden') continue;

    const width = el.offsetWidth || el.getBoundingClientRect().width;
    const height = el.offsetHeight || el.getBoundingClientRect().height;
    if (el.childNodes.length === 0 && (width === 0 || height === 0) && !el.shadowRoot) continue;
    if (width <= 10 || height <= 10) {
      descend(el, entry);
      continue;
    }

    const isCheckbox = tag === 'INPUT' && (el.getAttribute('type') || '').toLowerCase() === 'checkbox';
    if (ATOMIC.has(tag) || isCheckbox) {
      if (coversSelf(el)) capture(el, entry);
      continue;
    }

    if (el.shadowRoot) {
      descend(el, entry);
      continue;
    }

    if (COMPOSITE.has(tag)) {
      capture(el, entry);
      descend(el, entry);
      continue;
    }

    if (el.childElementCount === 0) {
      const hasText = (el.textContent || '').trim() !== '';
      const hasBackground = (style.backgroundImage || '').slice(0, 3) === 'url';
      // Empty form controls go on to the five-point check.
      if (hasText || hasBackground || !INTERACTIVE.has(tag)) {
        if ((hasText || hasBackground) && coversSelf(el)) capture(el, entry);
        continue;
      }
    }

    const rect = el.getBoundingClientRect();
    if (rect.width < 200 && rect.height < 200 && rect.width > 5 && rect.height > 5
        && style.cursor === 'pointer' && el.querySelectorAll(NESTED_CONTROLS).length === 0) {
      capture(el, entry);
      continue;
    }

    const matches = fivePointMatches(el);
    if (matches === 5) {
      if (el.childNodes.length > 0) {
        descend(el, entry);
        if ((el.innerText || '').trim() === '') continue;
      }
      if (tag === 'UL') continue;
      capture(el, entry);
      continue;
    }
    if (matches >= 3) {
      if (INTERACTIVE.has(tag)) capture(el, entry);
      descend(el, entry);
      continue;
    }
    if (el.childNodes.length > 1 || !INTERACTIVE.has(tag) || (tag === 'A' && el.childNodes.length > 0)) {
      descend(el, entry);
      continue;
    }
    // Partly covered control with at most one child node.
    const hit = centerElement(el);
    if (hit && (hit === el || el.contains(hit))) capture(el, entry);
  }

  for (const [link, pointerEvents] of coverLinks) {
    link.style.pointerEvents = pointerEvents;
    capture(link, { ox: 0, oy: 0, inIframe: false });
  }

  return {
    elements: captured.map((el) => collectFacts(el, contexts.get(el))),
    scrollContainers: containers.map((el, index) => describeContainer(el, index, {})),
    iterations: iterations,
    truncated: truncated,
  };
"""

SEGMENT_PAGE_JS = "(args) => {\n" + ELEMENT_FACTS_JS + _TRAVERSAL_JS + "}\n"

VIEWPORT_REGION_JS = """
() => ({
  x: window.scrollX,
  y: window.scrollY,
  width: window.innerWidth,
  height: window.innerHeight,
})
"""

FULL_PAGE_REGION_JS = """
() => {
  const doc = document.documentElement;
  const body = document.body || {};
  return {
    x: 0,
    y: 0,
    width: Math.max(doc.scrollWidth || 0, body.scrollWidth || 0),
    height: Math.max(doc.scrollHeight || 0, body.scrollHeight || 0),
  };
}
"""


def segment_args(max_iterations: int) -> dict:
    return {
        "atomicTags": list(ATOMIC_TAGS),
        "compositeTags": list(COMPOSITE_TAGS),
        "interactiveTags": list(INTERACTIVE_TAGS),
        "skippedTags": list(SKIPPED_TAGS),
        "maxIterations": int(max_iterations),
    }


PREPARE_FULL_PAGE_JS = """
() => {
  const doc = document.documentElement;
  const body = document.body;
  const overflow = body ? body.style.overflow : '';
  if (body) body.style.overflow = 'hidden';
  return {
    width: window.innerWidth,
    height: window.innerHeight,
    scrollHeight: Math.max(doc.scrollHeight || 0, body ? body.scrollHeight || 0 : 0),
    scrollX: window.scrollX,
    scrollY: window.scrollY,
    overflow: overflow,
  };
}
"""

SCROLL_TO_ORIGIN_JS = "() => window.scrollTo(0, 0)"

RESTORE_FULL_PAGE_JS = """
(state) => {
  if (document.body) document.body.style.overflow = state.overflow || '';
  window.scrollTo(state.scrollX || 0, state.scrollY || 0);
}
"""
