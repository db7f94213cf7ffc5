SUGGESTED_PROMPTS = [
    "Remove the background",
    "Place the product on a white marble table",
    "Add a soft studio lighting effect",
    "Make it look like a vintage photo",
    "Add a reflection shadow at the bottom",
]

PROMPT_PLACEHOLDER = (
    "E.g., Remove the background and replace it with a solid blue color..."
)

PRO_TIP = (
    "Be specific with your instructions. Mention colors, lighting, "
    "or objects you want to add or remove."
)
