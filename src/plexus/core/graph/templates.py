"""Ready-made workflow graphs.

Each function returns an unexecuted Graph; run it with
``await graph.execute(context)`` and read ``graph.outputs()``.
"""

from __future__ import annotations

import json
from collections.abc import Sequence

from plexus.core.graph.builder import WorkflowBuilder
from plexus.core.graph.graph import Graph
from plexus.core.schemas import KeywordAnalysis, ModerationVerdict

DEFAULT_MODEL = "gpt-4o-mini"


def content_pipeline(text: str, model: str = DEFAULT_MODEL) -> Graph:
    """Summarize -> extract keywords -> generate a title."""
    return (
        WorkflowBuilder("content-pipeline", model=model)
        .input(text, id="text")
        .generate("Summarize this in 2 sentences: {{input}}", id="summary", temperature=0.3)
        .extract(KeywordAnalysis, "Extract keywords from: {{summary.text}}", id="keywords")
        .transform(lambda result: json.dumps(result["data"]["keywords"]), id="keyword-list")
        .generate(
            "Create a catchy title using these keywords: {{input}}",
            id="title",
            temperature=0.8,
        )
        .output(id="output")
        .build()
    )


def translation_pipeline(
    text: str,
    languages: Sequence[str] = ("French", "Spanish", "German"),
    model: str = DEFAULT_MODEL,
) -> Graph:
    """Translate into every language; the output maps slot -> translation."""
    builder = WorkflowBuilder("translation-pipeline", model=model).input(text, id="text")
    translations = []
    for language in languages:
        node_id = f"translate-{language.lower()}"
        builder.at("text").generate(
            f"Translate to {language}: {{{{input}}}}", id=node_id, temperature=0.3
        )
        translations.append(node_id)
    return (
        builder.merge(*translations, strategy="object", id="translations")
        .output(id="output")
        .build()
    )


def analysis_pipeline(text: str, model: str = DEFAULT_MODEL) -> Graph:
    """Technical and business analyses merged into one synthesis."""
    builder = WorkflowBuilder("analysis-pipeline", model=model).input(text, id="text")
    builder.generate("Analyze from a technical perspective: {{input}}", id="technical")
    builder.at("text").generate("Analyze from a business perspective: {{input}}", id="business")
    return (
        builder.merge("technical", "business", strategy="concat", id="perspectives")
        .generate(
            "Synthesize these perspectives into a balanced conclusion:\n\n{{input}}",
            id="synthesis",
        )
        .output(id="output")
        .build()
    )


def moderation_pipeline(text: str, model: str = DEFAULT_MODEL) -> Graph:
    """Classify content safety; the output carries ``conditionMet`` = is safe."""
    return (
        WorkflowBuilder("moderation-pipeline", model=model)
        .input(text, id="text")
        .extract(
            ModerationVerdict,
            "Analyze this content for safety and categorize it: {{input}}",
            id="verdict",
        )
        .condition(lambda result: result["data"]["isSafe"], id="is-safe")
        .output(id="output")
        .build()
    )


TEMPLATES = {
    "content": content_pipeline,
    "translation": translation_pipeline,
    "analysis": analysis_pipeline,
    "moderation": moderation_pipeline,
}
