"""In-page scripts for resolving example points and fetching template candidates."""

from __future__ import annotations

from .element_script import ELEMENT_FACTS_JS

_PATH_HELPERS_JS = r"""
  function xpathOf(element) {
    let path = '';
    for (; element && element.nodeType === 1; element = element.parentNode) {
      const tag = element.tagName.toLowerCase();
      let index = 1;
      for (let sib = element.previousSibling; sib; sib = sib.previousSibling) {
        if (sib.nodeType === 1 && sib.tagName.toLowerCase() === tag) index++;
      }
      path = '/' + tag + '[' + index + ']' + path;
    }
    return path;
  }

  function propertiesOf(el) {
    const style = window.getComputedStyle(el);
    const rect = el.getBoundingClientRect();
    return {
      tagName: el.tagName.toUpperCase(),
      parent: el.parentElement ? el.parentElement.tagName.toUpperCase() : '',
      className: typeof el.className === 'string' ? el.className : (el.getAttribute('class') || ''),
      backgroundColor: style.backgroundColor,
      color: style.color,
      fontSize: style.fontSize,
      fontWeight: style.fontWeight,
      x: Math.round(rect.x + window.scrollX),
      y: Math.round(rect.y + window.scrollY),
      width: Math.round(rect.width),
      height: Math.round(rect.height),
      src: el.getAttribute('src'),
      href: el.getAttribute('href'),
      text: (el.innerText || '').trim(),
    };
  }

  function isVisible(el) {
    if (el.style && (el.style.display === 'none' || el.style.visibility === 'hidden' || el.style.opacity === '0')) return false;
    const style = window.getComputedStyle(el);
    if (style.display === 'none' || style.visibility === 'hidden' || parseFloat(style.opacity) === 0) return false;
    if (el.offsetWidth === 0 && el.offsetHeight === 0) return false;
    for (let node = el.parentElement; node; node = node.parentElement) {
      const outer = window.getComputedStyle(node);
      if (outer.display === 'none' || parseFloat(outer.opacity) === 0) return false;
    }
    // Off-canvas elements sit entirely left of or above the page.
    const rect = el.getBoundingClientRect();
    return rect.right + window.scrollX > 0 && rect.bottom + window.scrollY > 0;
  }

  function byXpath(path) {
    try {
      return document.evaluate(path, document, null, XPathResult.FIRST_ORDERED_NODE_TYPE, null).singleNodeValue;
    } catch (e) {
      return null;
    }
  }
"""

RESOLVE_POINTS_JS = "(args) => {\n" + ELEMENT_FACTS_JS + _PATH_HELPERS_JS + r"""
  function directText(el) {
    let text = '';
    el.childNodes.forEach((child) => {
      if (child.nodeType === Node.TEXT_NODE) text += child.textContent;
    });
    return text.trim();
  }

  function atPoint(x, y, wanted) {
    const scrollY = Math.max(0, y - window.innerHeight / 2);
    window.scrollTo(0, scrollY);
    const vx = x - window.scrollX;
    const vy = y - window.scrollY;
    let el = document.elementFromPoint(vx, vy);
    if (el === null) return null;

    let cover = null;
    let coverStyle = '';
    if (wanted !== 'A' && el.tagName === 'A' && el.getAttribute('href') && directText(el) === '') {
      cover = el;
      coverStyle = cover.style.pointerEvents;
      cover.style.pointerEvents = 'none';
      el = document.elementFromPoint(vx, vy) || cover;
    }
    let found = null;
    if (el.tagName.toUpperCase() === wanted) {
      found = el;
    } else {
      for (const child of el.children) {
        if (child.tagName.toUpperCase() === wanted) {
          found = child;
          break;
        }
      }
      let parent = el.parentElement;
      while (!found && parent && parent !== document.documentElement) {
        if (parent.tagName.toUpperCase() === wanted) found = parent;
        parent = parent.parentElement;
      }
    }
    if (cover !== null) cover.style.pointerEvents = coverStyle;
    return found;
  }

  const initialX = window.scrollX;
  const initialY = window.scrollY;
  const resolved = args.points.map((point) => {
    const el = atPoint(point.x, point.y, String(point.tag || '').toUpperCase());
    if (el === null) return null;
    return { xpath: xpathOf(el), properties: propertiesOf(el) };
  });
  window.scrollTo(initialX, initialY);
  return resolved;
}
"""

LIST_BY_TAG_JS = "(args) => {\n" + _PATH_HELPERS_JS + r"""
  return Array.from(document.getElementsByTagName(args.tag)).filter(isVisible).map((el) => ({
    xpath: xpathOf(el),
    className: typeof el.className === 'string' ? el.className : (el.getAttribute('class') || ''),
  }));
}
"""

DESCRIBE_XPATHS_JS = "(args) => {\n" + ELEMENT_FACTS_JS + _PATH_HELPERS_JS + r"""
  const containers = __scrollContainers(document);
  return args.xpaths.map((path) => {
    const el = byXpath(path);
    if (!el || el.nodeType !== 1) return null;
    const facts = collectFacts(el, { containers: containers });
    facts.xpath = path;
    return facts;
  });
}
"""

QUERY_SELECTOR_JS = "(args) => {\n" + _PATH_HELPERS_JS + r"""
  let nodes = [];
  try {
    nodes = Array.from(document.querySelectorAll(args.selector));
  } catch (e) {
    return [];
  }
  return nodes
    .filter(isVisible)
    .map((el) => ({ xpath: xpathOf(el), properties: propertiesOf(el) }));
}
"""
