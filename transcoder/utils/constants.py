"""
Prompt library and user-facing strings.

The recognition prompt is a formatting contract with the inference service:
downstream rendering (the \\bm macro, align* unwrapping) depends on the model
following it, so keep it verbatim.
"""

RECOGNITION_PROMPT = (
    "Please read the mathematical equation in the image and output the LaTeX code. "
    "IMPORTANT INSTRUCTIONS: "
    "- DO NOT include any other text or explanations "
    "- DO NOT include $ symbols around the equation "
    "- For vector notation, carefully identify which symbols represent vectors: "
    "* Use \\mathbf{} for bold vectors (like \\mathbf{v}, \\mathbf{b}, \\mathbf{x}, "
    "\\mathbf{y}, etc.) "
    "* Use \\bm{} for bold mathematical symbols that are vectors "
    "* Pay special attention to subscripts and superscripts on vectors "
    "* Common vector symbols include: v, u, w, b, x, y, z, a, c, d, e, f, g, h, i, "
    "j, k, l, m, n, o, p, q, r, s, t "
    "- Use \\mathbb{} for special number sets (like \\mathbb{R}, \\mathbb{Z}, "
    "\\mathbb{N}, \\mathbb{C}) "
    "- Use \\mathcal{} for calligraphic letters (like \\mathcal{L}, \\mathcal{M}, "
    "\\mathcal{N}) "
    "- Use align* environment for multi-line equations "
    "- Preserve all mathematical notation exactly as shown in the image"
)

EXPLANATION_PROMPT = (
    "Please explain the following LaTeX equation in {language}: by 3-4 sentences. "
    "Please write the equations in the explanation using TeX format. {markup}"
)

# Placeholders shown in the equation pane
RECOGNIZING_TEXT = "Recognizing equation..."
EMPTY_RECOGNITION_TEXT = "No equation was found in the image."
RECOGNITION_ERROR_TEXT = "An error occurred. Please try again.\n{message}"

# Placeholders shown in the explanation pane
EXPLAINING_TEXT = "Generating explanation..."
EMPTY_EXPLANATION_TEXT = "No explanation was found."
EXPLANATION_ERROR_TEXT = "Error: {message}"

# Export messages
NO_EQUATION_TEXT = "No equation has been entered."
SVG_SAVED_TEXT = "Saved the equation as {name}."
IMAGE_COPIED_TEXT = "Copied the equation image to the clipboard!"
SVG_TEXT_COPIED_TEXT = "Copied the equation SVG to the clipboard as text!"
LATEX_COPIED_TEXT = "Copied the TeX code to the clipboard!"
VIEWER_TEXT = (
    "The clipboard is not available. The image was opened in a viewer; "
    "right-click it and choose \"Copy Image\" to copy it."
)
IMAGE_DOWNLOADED_TEXT = (
    "Writing to the clipboard failed. The image was downloaded as {name} instead."
)

SVG_FILENAME = "formula.svg"
PNG_FILENAME = "equation.png"

# Timing (milliseconds)
PROGRESS_RESET_DELAY_MS = 500
NOTIFICATION_DURATION_MS = 3000
