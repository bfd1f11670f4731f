"""
In-page helpers shared by the segmenter and the pattern generalizer.

``ELEMENT_FACTS_JS`` is not evaluated on its own; it is spliced into the
traversal and generalization scripts so both describe an element with the
same fact record. Classification of those facts happens in Python.
"""

from __future__ import annotations

ELEMENT_FACTS_JS = r"""
  const __clickAttrs = ['onclick', 'href', 'onmousedown', 'onmouseup', 'onkeydown', 'onkeyup'];

  function __ownHandler(el) {
    if (!el || !el.getAttribute) return false;
    for (const attr of __clickAttrs) {
      if (el.getAttribute(attr) != null) return true;
    }
    try {
      return window.getComputedStyle(el).cursor === 'pointer';
    } catch (e) {
      return false;
    }
  }

  function __clickable(el) {
    let cur = el;
    while (cur) {
      if (__ownHandler(cur)) return true;
      cur = cur.parentElement;
    }
    return false;
  }

  function __isScrollContainer(el) {
    try {
      const style = window.getComputedStyle(el);
      const scrollY = style.overflowY === 'scroll' || style.overflowY === 'auto';
      const scrollX = style.overflowX === 'scroll' || style.overflowX === 'auto';
      if (!scrollY && !scrollX) return false;
      return (scrollY && el.scrollHeight > el.clientHeight) || (scrollX && el.scrollWidth > el.clientWidth);
    } catch (e) {
      return false;
    }
  }

  function __scrollContainers(doc) {
    const found = [];
    doc.querySelectorAll('*').forEach((el) => {
      if (el !== doc.documentElement && el !== doc.body && __isScrollContainer(el)) found.push(el);
    });
    return found;
  }

  function __pageBox(el, ctx) {
    let rect = el.getBoundingClientRect();
    if ((rect.width === 0 || rect.height === 0) && el.parentElement) {
      rect = el.parentElement.getBoundingClientRect();
    }
    return {
      x: rect.x + window.scrollX + (ctx.offsetX || 0),
      y: rect.y + window.scrollY + (ctx.offsetY || 0),
      width: Math.max(0, rect.width),
      height: Math.max(0, rect.height),
    };
  }

  function __className(el) {
    const raw = el.className;
    if (typeof raw === 'string') return raw;
    if (raw && typeof raw.baseVal === 'string') return raw.baseVal;
    return el.getAttribute ? (el.getAttribute('class') || '') : '';
  }

  function __imageSource(el) {
    if (el.tagName && el.tagName.toLowerCase() === 'img') return el.src || '';
    try {
      const match = window.getComputedStyle(el).backgroundImage.match(/url\("?(.*?)"?\)/);
      return match ? match[1] : '';
    } catch (e) {
      return '';
    }
  }

  function __ancestry(el) {
    const parents = [];
    let parent = el.parentElement;
    for (let i = 0; i < 2; i++) {
      if (!parent) {
        parents.push({ id: '', className: '', tag: 'div' });
        continue;
      }
      const tag = parent.tagName.toLowerCase();
      parents.push({ id: parent.id || '', className: __className(parent), tag: tag });
      parent = parent.parentElement;
    }
    return parents.reverse();
  }

  function collectFacts(el, ctx) {
    ctx = ctx || {};
    try {
      const tag = (el.tagName || '').toUpperCase();
      const style = window.getComputedStyle(el);
      const parent = el.parentElement;
      const className = __className(el);
      const closestLink = el.closest ? el.closest('a') : null;
      let containerIndex = null;
      const containers = ctx.containers || [];
      for (let i = 0; i < containers.length; i++) {
        if (containers[i] !== el && containers[i].contains(el)) {
          containerIndex = i;
          break;
        }
      }
      const facts = {
        tag: tag,
        parentTag: parent ? parent.tagName.toUpperCase() : '',
        id: el.id || '',
        className: className,
        classes: Array.from(el.classList || []),
        text: el.innerText || el.textContent || '',
        hasText: (el.textContent || '').trim() !== '',
        role: el.getAttribute('role') || '',
        type: el.getAttribute('type') || '',
        value: (tag === 'INPUT' || tag === 'TEXTAREA') ? el.value : el.getAttribute('value'),
        ariaLabel: el.getAttribute('aria-label') || '',
        alt: el.getAttribute('alt') || '',
        placeholder: el.getAttribute('placeholder'),
        href: el.getAttribute('href'),
        src: el.getAttribute('src'),
        cursor: style.cursor,
        backgroundImage: style.backgroundImage || '',
        backgroundColor: style.backgroundColor,
        color: style.color,
        fontSize: style.fontSize,
        fontWeight: style.fontWeight,
        hasClickListener: !!(window.getEventListeners && (window.getEventListeners(el).click || []).length),
        isCustomElement: !!(window.customElements && window.customElements.get(tag.toLowerCase())),
        clickable: __clickable(el),
        triggerable: __ownHandler(el),
        box: __pageBox(el, ctx),
        inIframe: !!ctx.inIframe,
        iframeOffset: { x: ctx.offsetX || 0, y: ctx.offsetY || 0 },
        scrollContainer: containerIndex,
        identity: {
          id: el.id || '',
          text: (el.textContent || '').trim(),
          image: __imageSource(el),
          link: closestLink ? (closestLink.href || '') : '',
          className: className,
          tag: tag.toLowerCase(),
        },
        ancestry: __ancestry(el),
        error: null,
      };
      if (tag === 'SELECT') {
        facts.options = Array.from(el.querySelectorAll('option')).map((o) => ({ value: o.value, text: o.text }));
      }
      return facts;
    } catch (e) {
      return { tag: (el && el.tagName ? el.tagName.toUpperCase() : ''), error: String(e) };
    }
  }

  function describeContainer(el, index, ctx) {
    const box = __pageBox(el, ctx || {});
    return {
      index: index,
      box: box,
      scrollTop: el.scrollTop,
      scrollLeft: el.scrollLeft,
      verticalScrollable: Math.max(0, el.scrollHeight - el.clientHeight),
      horizontalScrollable: Math.max(0, el.scrollWidth - el.clientWidth),
    };
  }
"""
