"""
Prompt construction for SWOT generation, plus the sections every step shares.

Profile and source sections are fitted to the token budget so the prompt
stays inside the model's context window.
"""

from typing import Dict, List, Mapping, Optional, Sequence

from nswot.analysis.token_budget import TokenBudget, fit_section
from nswot.core.models import DATA_SOURCES, AnonymizedProfile, Theme
from nswot.llm.types import FinishReason

PROMPT_VERSION = "swot-v2"

ROLE_DISPLAY_NAMES = {
    "staff_engineer": "Staff Engineer",
    "senior_em": "Senior Engineering Manager",
}

ROLE_INSTRUCTIONS = {
    "staff_engineer": """- Focus on tactical, near-term recommendations (next sprint or next week)
- Recommend specific technical investigations, design reviews, or stakeholder conversations
- Frame recommendations as direct actions: "Propose a design review for...", "Schedule a pairing session with...", "Investigate the dependency between..."
- Highlight technical debt, architecture risks, and delivery bottlenecks
- When citing team dynamics, frame through the lens of technical decision-making""",
    "senior_em": """- Focus on process and team-oriented recommendations (next quarter or next cycle)
- Recommend resourcing changes, process improvements, and cross-team coordination actions
- Frame recommendations as management actions: "Consider reallocating...", "Initiate a retrospective on...", "Escalate to leadership...", "Establish a working group for..."
- Highlight team health, capacity risks, organizational misalignment, and planning gaps
- When citing technical issues, frame through the lens of team impact and resourcing""",
}

SOURCE_HEADINGS = {
    "jira": "Jira Data",
    "confluence": "Confluence Data",
    "github": "GitHub Data",
    "codebase": "Codebase Analysis Data",
}

SOURCE_DISPLAY_NAMES = {
    "jira": "Jira",
    "confluence": "Confluence",
    "github": "GitHub",
    "codebase": "codebase analysis",
}

SOURCE_ID_HINTS = {
    "jira": "For Jira evidence, use sourceIds like `jira:PROJ-123`.",
    "confluence": "For Confluence evidence, use sourceIds like `confluence:PAGE-TITLE` or `confluence:page-id`.",
    "github": "For GitHub evidence, use sourceIds like `github:owner/repo#123`.",
    "codebase": "For codebase evidence, use sourceIds like `codebase:owner/repo`.",
}

SOURCE_ID_EXAMPLES = {
    "jira": '"jira:PROJ-123"',
    "confluence": '"confluence:page-title"',
    "github": '"github:owner/repo#123"',
    "codebase": '"codebase:owner/repo"',
}

TRUNCATION_HINT = " (response was truncated because the output token limit was reached. Be more concise.)"


def role_display_name(role: str) -> str:
    return ROLE_DISPLAY_NAMES.get(role, role)


def build_profiles_section(profiles: Sequence[AnonymizedProfile], include_notes: bool = True) -> str:
    blocks = []
    for p in profiles:
        quotes = "\n".join(f'  - "{q}"' for q in p.quotes) if p.quotes else "  (none)"
        lines = [
            f"### {p.label}",
            f"- **Role**: {p.role or 'Not specified'}",
            f"- **Team**: {p.team or 'Not specified'}",
            f"- **Concerns**: {p.concerns or 'None provided'}",
            f"- **Priorities**: {p.priorities or 'None provided'}",
            "- **Key Quotes**:",
            quotes,
        ]
        if include_notes:
            lines.append(f"- **Notes**: {p.notes or 'None provided'}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def available_source_types(data_sources: Mapping[str, Optional[str]]) -> List[str]:
    """Source types the model may cite: profiles and Jira always, others when present."""
    types = ["profile", "jira"]
    types.extend(s for s in DATA_SOURCES if s != "jira" and data_sources.get(s))
    return types


def source_type_union(data_sources: Mapping[str, Optional[str]]) -> str:
    return " | ".join(f'"{s}"' for s in available_source_types(data_sources))


def build_data_sections(
    profiles: Sequence[AnonymizedProfile],
    data_sources: Mapping[str, Optional[str]],
    budget: TokenBudget,
    include_notes: bool = True,
) -> str:
    """Profile section followed by one section per data source, each fitted to its budget."""
    sections = [
        "## Stakeholder Profiles",
        fit_section(build_profiles_section(profiles, include_notes), budget.profiles),
    ]
    for source in DATA_SOURCES:
        markdown = data_sources.get(source)
        if markdown and source in budget.sources:
            body = fit_section(markdown, budget.for_source(source))
        else:
            body = f"No {SOURCE_DISPLAY_NAMES[source]} data is available for this analysis."
        sections.extend([f"## {SOURCE_HEADINGS[source]}", body])
    return "\n\n".join(sections)


def build_source_reference(
    profiles: Sequence[AnonymizedProfile],
    data_sources: Mapping[str, Optional[str]],
    subject: str = "piece of evidence you cite",
) -> str:
    lines = [
        "## Data Sources Reference",
        "",
        f"Each {subject} must use one of these sourceId values:",
    ]
    lines.extend(f"- `{p.source_id}`" for p in profiles)
    lines.append("")
    lines.append(SOURCE_ID_HINTS["jira"])
    lines.extend(SOURCE_ID_HINTS[s] for s in DATA_SOURCES if s != "jira" and data_sources.get(s))
    return "\n".join(lines)


def build_system_prompt() -> str:
    return """You are an expert organizational analyst. You produce structured SWOT analyses for software engineering organizations based on stakeholder interview data and external data sources (Jira, Confluence, GitHub, codebase analysis).

RULES (follow these exactly):
1. Every claim in the SWOT must cite specific evidence from the provided data. Use the exact sourceId values provided.
2. NEVER invent information. If the data does not support a claim, do not make it.
3. If evidence is weak or from a single vague source, set confidence to "low".
4. If you cannot find evidence for a particular SWOT quadrant, return an empty array for that quadrant. Do not fabricate items.
5. Recommendations must be concrete and actionable, not generic.
6. Use only the data provided in this prompt. Do not use external knowledge about the organization, its employees, or its industry.
7. All stakeholder names have been anonymized. Refer to them only by their labels (e.g., "Stakeholder A").

CROSS-SOURCE TRIANGULATION:
- When multiple source types (profiles, Jira, Confluence, GitHub) corroborate the same claim, set confidence to "high" and cite evidence from each source.
- When a claim is supported by only one source type, set confidence to "medium" or "low" depending on evidence strength.
- Actively look for patterns that span sources: e.g., a stakeholder concern about delivery speed + Jira stories stuck in review + GitHub PRs with slow merge times.
- Each claim should ideally cite 2+ pieces of evidence. Single-evidence claims should have confidence "low".

EVIDENCE DENSITY:
- Prefer claims with rich, multi-source evidence over numerous weakly-supported claims.
- If a claim has supporting evidence from 3+ source types, flag it as high-confidence.
- Quality of evidence matters more than quantity.

OUTPUT FORMAT:
Respond with a single JSON object wrapped in a ```json code fence. The JSON must conform exactly to the schema provided below. Do not include any text before or after the JSON block."""


def _summaries_schema(data_sources: Mapping[str, Optional[str]]) -> str:
    entries: Dict[str, str] = {
        "profiles": '"markdown string summarizing key themes from stakeholder interviews"',
        "jira": '"markdown string summarizing key patterns from Jira data"',
    }
    for source in DATA_SOURCES:
        if source != "jira" and data_sources.get(source):
            entries[source] = (
                f'"markdown string summarizing key patterns from {SOURCE_DISPLAY_NAMES[source]} data"'
            )
    return ",\n".join(f'    "{key}": {value}' for key, value in entries.items())


def build_themes_section(themes: Sequence[Theme]) -> str:
    lines = [
        "## Recurring Themes (Pre-Analysis)",
        "",
        "These themes were identified across the data before this analysis. Use them to "
        "organize claims and to find cross-source evidence.",
        "",
    ]
    for i, theme in enumerate(themes, 1):
        lines.append(
            f"{i}. **{theme.label}** (frequency {theme.frequency}; "
            f"sources: {', '.join(theme.source_types)})"
        )
        lines.append(f"   {theme.description}")
    return "\n".join(lines)


def build_user_prompt(
    role: str,
    profiles: Sequence[AnonymizedProfile],
    data_sources: Mapping[str, Optional[str]],
    budget: TokenBudget,
    synthesis_markdown: Optional[str] = None,
    themes: Optional[Sequence[Theme]] = None,
) -> str:
    display_name = role_display_name(role)
    example_ids = " | ".join(
        ['"profile:Stakeholder A"']
        + [SOURCE_ID_EXAMPLES[s] for s in available_source_types(data_sources) if s != "profile"]
    )

    prompt = f"""## Role Context

You are producing this analysis for a {display_name}. Tailor your recommendations accordingly:

{ROLE_INSTRUCTIONS.get(role, '')}

{build_data_sections(profiles, data_sources, budget)}

{build_source_reference(profiles, data_sources)}

## Output Schema

```json
{{
  "strengths": [SwotItem],
  "weaknesses": [SwotItem],
  "opportunities": [SwotItem],
  "threats": [SwotItem],
  "summaries": {{
{_summaries_schema(data_sources)}
  }}
}}
```

Where each SwotItem is:
```json
{{
  "claim": "A specific, actionable statement about the organization",
  "evidence": [
    {{
      "sourceType": {source_type_union(data_sources)},
      "sourceId": {example_ids},
      "sourceLabel": "Human-readable label for this source",
      "quote": "Direct quote or specific data point supporting the claim"
    }}
  ],
  "impact": "What happens if this is not addressed (for weaknesses/threats) or leveraged (for strengths/opportunities)",
  "recommendation": "Specific next step tailored to the {display_name} role",
  "confidence": "high" | "medium" | "low"
}}
```

Produce the analysis now."""

    if synthesis_markdown:
        prompt += (
            "\n\n## Cross-Source Synthesis (Pre-Analysis)\n\n"
            "The following synthesis was produced by correlating signals across all data "
            "sources. Use it to inform and strengthen your SWOT analysis, especially for "
            f"cross-source triangulation and confidence assessment.\n\n{synthesis_markdown}"
        )
    if themes:
        prompt += "\n\n" + build_themes_section(themes)

    return prompt


def annotate_parse_error(message: str, finish_reason: Optional[FinishReason]) -> str:
    """Add a conciseness hint when the failed reply hit the output token limit."""
    if finish_reason == FinishReason.LENGTH:
        return message + TRUNCATION_HINT
    return message


def build_corrective_prompt(
    parse_error: str, data_sources: Optional[Mapping[str, Optional[str]]] = None
) -> str:
    keys = ['"profiles": "..."', '"jira": "..."']
    if data_sources is None:
        keys.extend(f'["{s}": "..."]' for s in DATA_SOURCES if s != "jira")
    else:
        keys.extend(f'"{s}": "..."' for s in DATA_SOURCES if s != "jira" and data_sources.get(s))

    return f"""Your previous response could not be parsed. The error was:

{parse_error}

Please respond again with ONLY a JSON object wrapped in a ```json code fence. The JSON must conform exactly to the schema described in the original prompt. Do not include any explanatory text before or after the JSON block.

Common issues to avoid:
- Trailing commas in JSON arrays or objects
- Unescaped quotes within string values (use \\" instead)
- Missing closing braces or brackets
- Using single quotes instead of double quotes
- Claims with an empty "evidence" array (every claim needs at least one evidence entry)

The JSON must have this top-level shape: {{ "strengths": [...], "weaknesses": [...], "opportunities": [...], "threats": [...], "summaries": {{ {', '.join(keys)} }} }}"""
