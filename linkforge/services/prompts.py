"""Prompt templates for the LLM completion service."""

MATURITY_FRAMEWORK = """AI Maturity Framework levels:
0 - Asker: uses AI as a search replacement, one-off questions.
1 - Prompter: writes structured prompts, reuses templates, iterates on answers.
2 - Builder: chains tools, builds custom assistants, automates personal workflows.
3 - Orchestrator: designs multi-step agent systems and pipelines for a team.
4 - Architect: builds AI-native products and organisational infrastructure.

level_relation:
- "level-up": teaches the jump from the previous level into this one.
- "level-practice": deepens skills inside this level.
- "cross-level": useful across several levels."""

CLASSIFY_PROMPT = """You classify learning content about working with AI.

{framework}

Read the source content below and respond with ONLY a JSON object of this shape:
{{
  "maturity_level": 0-4,
  "level_relation": "level-up" | "level-practice" | "cross-level",
  "topics": ["2-5 short lowercase topic names"],
  "tags": ["up to 8 lowercase tags"],
  "tools_mentioned": ["product or tool names exactly as written"],
  "difficulty": "beginner" | "intermediate" | "advanced"
}}

Source content:
---
{text}
---"""

GENERATE_PROMPT = """You turn raw source content into a practical, well-structured tutorial.

{framework}

Source URL: {url}

The content has already been classified as:
{classification}

Write an original tutorial in Markdown, pitched at that level and difficulty, that
teaches the useful techniques from the source. Do not copy long passages verbatim.
Respond with ONLY a JSON object:
{{
  "title": "clear, specific title",
  "slug": "url-safe-lowercase-slug",
  "summary": "two or three sentence summary",
  "body": "full Markdown tutorial body",
  "action_items": ["concrete next steps, in order"]
}}

Source content:
---
{text}
---"""

MERGE_PROMPT = """You maintain a tutorial that collects techniques from several sources.

Existing tutorial title: {title}
Existing summary:
{summary}

Existing body:
---
{body}
---

Existing action items:
{action_items}

A new source ({url}) covers the same topic. Fold any genuinely new techniques,
caveats or examples from it into the tutorial. Keep the existing structure and
voice, remove duplication, and keep the body in Markdown. Respond with ONLY a
JSON object:
{{
  "body": "updated Markdown body",
  "summary": "updated summary",
  "action_items": ["updated, ordered action items"]
}}

New source content:
---
{text}
---"""

AUDIO_SCRIPT_PROMPT = """You are an expert at converting written technical tutorials into spoken audio scripts.

Rewrite the following tutorial body into a script suitable for spoken audio delivery. Follow these rules strictly:

1. Use a natural, conversational tone as if explaining to a listener.
2. Describe code in plain language. Never read code syntax aloud.
3. Remove all visual references such as "see the diagram above" or "as shown below".
4. Convert tables into natural language.
5. Skip steps that are only code with no explanation.
6. Preserve all educational content: explanations, concepts, reasoning and context.
7. Output clean prose paragraphs only. No markdown, headers, bullet points, numbered lists, code blocks, backticks or braces.

Return ONLY the spoken script text. No preamble, no meta-commentary.

---

{body}"""

HOT_NEWS_PROMPT = """Write a punchy news-style blurb for a newly published AI tutorial.

Title: {title}
Summary: {summary}
Tools: {tools}

Respond with ONLY a JSON object:
{{"headline": "under 80 characters", "teaser": "one sentence under 200 characters"}}"""
