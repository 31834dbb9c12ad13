"""
Stealth helpers
===============
Anti-detection options for the persistent browser context.

This module centralises the browser camouflage:
- Launch arguments (sandbox flags, off-screen window)
- Context options (viewport, user agent, locale)
- Init script masking automation signatures

The challenge itself is never solved here; a realistic browser simply gets
through the interstitial more often.
"""

import random
from typing import Any

# =============================================================================
# CONFIGURATION
# =============================================================================

# Realistic desktop user agents (rotated per session)
USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36 Edg/124.0.0.0",
]

VIEWPORT = {"width": 1920, "height": 1080}

# The window is kept off-screen: headful enough for the challenge, invisible to the operator
LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    f"--window-size={VIEWPORT['width']},{VIEWPORT['height']}",
    "--window-position=-3000,-3000",
    "--disable-blink-features=AutomationControlled",
]


# =============================================================================
# FUNCTIONS
# =============================================================================

def get_random_user_agent() -> str:
    """Return a random realistic user agent.

    Returns:
        str: User agent string
    """
    return random.choice(USER_AGENTS)


def get_stealth_context_options(enabled: bool = True) -> dict[str, Any]:
    """Return the context options for ``launch_persistent_context``.

    The viewport is always pinned to the launch window size. When stealth is
    enabled the context also imitates a regular desktop browser:
    - Recent user agent
    - US English locale
    - Light color scheme, no touch

    Args:
        enabled: Whether stealth options are applied.

    Returns:
        dict: Playwright context options
    """
    options: dict[str, Any] = {"viewport": dict(VIEWPORT)}
    if not enabled:
        return options
    options.update(
        {
            "user_agent": get_random_user_agent(),
            "locale": "en-US",
            "timezone_id": "America/New_York",
            "color_scheme": "light",
            "has_touch": False,
            "is_mobile": False,
            "java_script_enabled": True,
        }
    )
    return options


# Init script run before any page script
ANTI_DETECTION_SCRIPT = """
// Hide the webdriver flag
Object.defineProperty(navigator, 'webdriver', {
    get: () => undefined
});

// Plausible plugin list
Object.defineProperty(navigator, 'plugins', {
    get: () => [
        { name: 'Chrome PDF Plugin', filename: 'internal-pdf-viewer' },
        { name: 'Chrome PDF Viewer', filename: 'mhjfbmdgcfjbbpaeojofohoefgiehjai' },
        { name: 'Native Client', filename: 'internal-nacl-plugin' },
    ]
});

Object.defineProperty(navigator, 'languages', {
    get: () => ['en-US', 'en']
});

// Chrome runtime (headless detection)
window.chrome = {
    runtime: {},
    loadTimes: function() {},
    csi: function() {},
    app: {}
};

// Permissions API override
const originalQuery = window.navigator.permissions.query;
window.navigator.permissions.query = (parameters) => (
    parameters.name === 'notifications' ?
        Promise.resolve({ state: Notification.permission }) :
        originalQuery(parameters)
);

// WebGL vendor/renderer masking
const getParameter = WebGLRenderingContext.prototype.getParameter;
WebGLRenderingContext.prototype.getParameter = function(parameter) {
    if (parameter === 37445) {
        return 'Intel Inc.';
    }
    if (parameter === 37446) {
        return 'Intel Iris OpenGL Engine';
    }
    return getParameter.call(this, parameter);
};
"""


async def apply_stealth_scripts(context, enabled: bool = True) -> None:
    """Register the anti-detection init script on a browser context.

    Args:
        context: Playwright BrowserContext
        enabled: No-op when False
    """
    if not enabled:
        return
    await context.add_init_script(ANTI_DETECTION_SCRIPT)
