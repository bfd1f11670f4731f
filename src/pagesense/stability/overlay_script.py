"""In-page scripts that mask animated regions before screenshot diffing."""

from __future__ import annotations

OVERLAY_CLASS = "___overlayCanvas"

# Carousel, slider and gallery libraries whose animation never settles.
BANNED_CLASSES = (
    "carousel",
    "carousel-container",
    "slick-slider",
    "flickity-viewport",
    "owl-carousel",
    "glider",
    "splide__list",
    "slidesjs-container",
    "siema",
    "glide__track",
    "jssor-slider",
    "flex-viewport",
    "vegas-container",
    "slides-container",
    "ws_images",
    "lSSlideOuter",
    "fullpage-wrapper",
    "sequence-canvas",
    "bx-viewport",
    "nivoSlider",
    "royalSlider",
    "sp-slides",
    "reveal",
    "roundSlider",
    "pswp",
    "nanoGallery",
    "chocolat-wrapper",
    "lg-inner",
    "blueimp-gallery",
    "unite-gallery",
    "rev_slider_wrapper",
    "ls-container-full-width",
    "masterslider",
    "sa-container",
    "cycle-slideshow",
    "pgwSlider",
    "bjqs-markers",
    "unslider-wrap",
    "slides",
    "turn-page-wrapper",
    "scroller-viewport",
    "anyslider-wrapper",
    "rtp-slider",
    "lean-slider-slide",
    "ws_list",
    "iis-slide-container",
    "slidr",
    "sd2-content-wrapper",
)

INSTALL_OVERLAYS_JS = """
(args) => {
  const overlayClass = args.overlayClass;
  const covered = new Set();
  const cover = (element) => {
    if (!element || covered.has(element) || !document.body) return;
    const rect = element.getBoundingClientRect();
    if (rect.width <= 0 || rect.height <= 0) return;
    covered.add(element);
    const canvas = document.createElement('canvas');
    canvas.width = rect.width + 1;
    canvas.height = rect.height + 1;
    canvas.style.position = 'fixed';
    canvas.style.left = `${rect.left}px`;
    canvas.style.top = `${rect.top}px`;
    canvas.style.width = `${rect.width + 1}px`;
    canvas.style.height = `${rect.height + 1}px`;
    canvas.style.zIndex = '9999';
    canvas.style.pointerEvents = 'none';
    canvas.style.backgroundColor = 'black';
    canvas.className = overlayClass;
    document.body.appendChild(canvas);
  };
  const safeCover = (element) => {
    try { cover(element); } catch (e) {}
  };

  const selector = (args.classes || []).map((name) => `.${CSS.escape(name)}`).join(',');
  if (selector) {
    document.querySelectorAll(selector).forEach(safeCover);
  }
  Array.from(document.getElementsByTagName('video')).forEach(safeCover);
  Array.from(document.getElementsByTagName('img')).forEach((img) => {
    if (img.width > args.minImageWidth) safeCover(img);
  });

  const viewportHeight = window.innerHeight || document.documentElement.clientHeight;
  const viewportWidth = window.innerWidth || document.documentElement.clientWidth;
  Array.from(document.querySelectorAll('*')).forEach((el) => {
    if (el.classList && el.classList.contains(overlayClass)) return;
    const style = window.getComputedStyle(el);
    if (!style.backgroundImage || style.backgroundImage === 'none') return;
    const rect = el.getBoundingClientRect();
    const inViewport = rect.top >= 0 && rect.left >= 0
      && rect.bottom <= viewportHeight && rect.right <= viewportWidth;
    if (!inViewport || style.visibility === 'hidden' || style.opacity === '0') return;
    const top = document.elementFromPoint(rect.left + rect.width / 2, rect.top + rect.height / 2);
    if (top === el || el.contains(top)) safeCover(el);
  });
  return document.querySelectorAll(`.${overlayClass}`).length;
}
"""

REMOVE_OVERLAYS_JS = """
(overlayClass) => {
  const overlays = document.querySelectorAll(`.${overlayClass}`);
  overlays.forEach((el) => el.remove());
  return overlays.length;
}
"""
