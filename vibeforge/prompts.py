import textwrap

from vibeforge.assembler import ProjectType
from vibeforge.extractor import serialize

SEARCH_ON = (
    "You have the ability to search the web for up-to-date information, find relevant "
    "image URLs, and incorporate them into the code."
)
SEARCH_OFF = (
    "You must generate the code based only on your existing knowledge. "
    "Do not use external information."
)

PROJECT_INSTRUCTIONS = {
    ProjectType.COMPONENT: (
        "For a 'react' project, you MUST generate a single file named `App.tsx`. ALL code, "
        "including CSS styles, must be contained within this single file. Do NOT generate any "
        "other files like `index.css`. CSS should be implemented directly within the TSX file, "
        "for example by rendering a `<style>` tag from a string, or by using inline style "
        "objects. The component must be the default export. Only `react` and `react-dom` may "
        "be imported. The final output must be 100% self-contained in one file."
    ),
    ProjectType.STATIC_COMPLEX: (
        "For an 'html-css-js-complex' project, you MUST generate a more complex, multi-file "
        "application with at least 5 files (e.g. index.html, several CSS files for layout and "
        "components, several JS files for API handling, UI logic, etc.). This is for "
        "sophisticated projects, potentially with multiple views or tabs managed via JavaScript."
    ),
    ProjectType.STATIC: (
        "For an 'html-css-js' project, you are not limited to a specific number of files. "
        "Generate all necessary files, including a primary index.html. Feel free to create "
        "multiple CSS and JavaScript files to keep the codebase well-organized. Do not link "
        "the CSS/JS files from index.html with <link>/<script src>; they are inlined automatically."
    ),
}

FILE_FORMAT_RULES = textwrap.dedent("""\
    IMPORTANT: You MUST ONLY respond with a single, valid JSON array of file objects. Do not include any other text or markdown formatting like ```json.
    Each object in the JSON array represents a file and must have three string keys: "fileName", "language", and "code".
    Example of a valid file object: {"fileName": "style.css", "language": "css", "code": "body { font-family: sans-serif; }"}
    """)

FIX_SYSTEM_PROMPT = (
    "You are an expert programmer specializing in debugging web applications. You will "
    "receive a codebase and a list of console errors. Your sole purpose is to fix the code "
    "and return it in the specified JSON format."
)

ENHANCE_SYSTEM_PROMPT = textwrap.dedent("""\
    You are a creative and expert prompt engineer. Your task is to rewrite and enhance the user's prompt to make it more descriptive, detailed, and clear for an AI code generation model.
    Focus on adding visual details, specifying layout, suggesting color palettes, and clarifying functionality.
    The goal is to transform a simple idea into a rich, actionable prompt.
    IMPORTANT: You MUST ONLY respond with the enhanced prompt text. Do not include any conversational phrases, explanations, or markdown formatting. Just the new prompt.""")

IMAGE_HINT = "\nUse the attached image as a visual reference for the design, layout, and color scheme."


def system_instruction(project_type, search: bool) -> str:
    ptype = ProjectType.parse(project_type)
    return "\n".join([
        "You are a world-class senior frontend engineer. Your task is to generate a complete "
        "and functional web application codebase based on the user's request.",
        SEARCH_ON if search else SEARCH_OFF,
        f"The project type is: {ptype.value}.",
        "",
        PROJECT_INSTRUCTIONS[ptype],
        "",
        "The code should be modern, clean, and visually appealing using best practices.",
        "",
        FILE_FORMAT_RULES,
    ])


def with_context(prompt: str, context_files) -> str:
    """Prefix the user request with reference files the user attached."""
    if not context_files:
        return prompt
    blocks = "\n\n".join(
        f"--- START FILE: {f.file_name} ---\n{f.code}\n--- END FILE: {f.file_name} ---"
        for f in context_files
    )
    return (
        "Please use the following files as context for your response. The user may ask you "
        "to modify them, or use them as a reference for style, logic, or structure when "
        f"generating new files.\n\n**CONTEXT FILES:**\n{blocks}\n\n**USER REQUEST:**\n{prompt}"
    )


def fix_prompt(files, error_messages, project_type) -> str:
    ptype = ProjectType.parse(project_type)
    errors = "\n".join(error_messages)
    return textwrap.dedent("""\
        You are an expert debugger. The following code has produced errors in the browser console.
        Your task is to analyze the code and the errors, fix all the issues, and return the complete, corrected codebase.

        **Current Codebase (JSON array of file objects):**
        ```json
        {files}
        ```

        **Console Errors:**
        ```
        {errors}
        ```

        Please fix the bugs. Adhere to the original project goal and structure. The project type is '{ptype}'.
        Return ONLY a single valid JSON array of file objects with the corrected code, just like the input format. Do not add any conversational text or markdown formatting.
        """).format(files=serialize(files), errors=errors, ptype=ptype.value)
