"""Prompt templates for segmentation and storyboarding."""

SEGMENT_PROMPT = """
You are a film editor.
Analyze the following story text and split it into distinct scenes or paragraphs suitable for video adaptation.
Each paragraph should represent a coherent visual sequence.
Keep the original wording; do not summarize or rewrite.

Story Text:
\"\"\"
{{ text }}
\"\"\"

{% if json_object %}
Return a JSON object of the form {"paragraphs": ["Scene 1 text...", "Scene 2 text..."]}.
{% else %}
Return a JSON array of strings.
Example: ["Scene 1 text...", "Scene 2 text..."]
{% endif %}
"""

SCENE_PROMPTS_PROMPT = """
You are a visual storyboard artist.
Read the following story paragraph and create {{ count }} distinct visual scene{{ 's' if count != 1 else '' }}.
For EACH scene, describe the "Start Point" (beginning of the shot) and the "End Point" (end of the shot, showing change or motion).
Both descriptions must work as standalone prompts for an image generator.

Style: {{ style }}.
Paragraph: "{{ paragraph }}"

Return a JSON array with exactly {{ count }} object{{ 's' if count != 1 else '' }}.
Schema: [{"start": "description...", "end": "description..."}]
"""

REWRITE_PROMPT = """
You are a visual storyboard artist.
Context Paragraph: "{{ paragraph }}"
Current Prompt: "{{ current_prompt }}"

{% if which == 'start' %}
Task: Rewrite the visual description for the Start Point (visual beginning) of a scene derived from this paragraph.
{% else %}
Task: Rewrite the visual description for the End Point (visual transition or end) of a scene derived from this paragraph.
{% endif %}
Make it distinct, detailed, visual, and suitable for an image generator.
Style: {{ style }}.

Return ONLY the plain text description, no JSON.
"""
