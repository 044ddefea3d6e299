"""
Discrepancy analysis between the two sides of a contradiction.

Compares the papers behind each side on study design, full-text availability
(a quality proxy) and publication timing. Population comparison needs text
analysis that is not done here, so it is reported as a placeholder.
"""

from typing import Iterable, List, Sequence, Set

from research_qa.models import DiscrepancyAnalysis, Finding, Paper, StudyType
from research_qa.utils.datetime_safe import publication_year

TIMING_GAP_YEARS = 3

POPULATION_PLACEHOLDER = "Population analysis requires deeper text analysis"

EXPLAIN_METHODS = "Different study designs may measure different aspects of the same outcome"
EXPLAIN_QUALITY = "Differences in full-text availability may reflect different depths of reporting"
EXPLAIN_TIMING = "Understanding of the underlying mechanisms may have evolved over time"
EXPLAIN_HETEROGENEITY = "Heterogeneity between study populations may lead to different findings"


def study_types(finding: Finding, papers: Sequence[Paper]) -> Set[str]:
    """Known study designs behind a finding, from the library and the extracted evidence."""
    types = {StudyType.coerce(p.study_type) for p in papers if p.study_type}
    types |= {e.study_type for e in finding.evidence if e.study_type}
    types.discard(StudyType.OTHER.value)
    return types


def _fmt(types: Iterable[str]) -> str:
    return ", ".join(sorted(types))


def compare_methodologies(types1: Set[str], types2: Set[str]) -> List[str]:
    if types1 and types2 and not (types1 & types2):
        return [f"Different study types: {_fmt(types1)} vs {_fmt(types2)}"]
    return []


def compare_quality(papers1: Sequence[Paper], papers2: Sequence[Paper]) -> str:
    full1 = sum(1 for p in papers1 if p.full_text_available)
    full2 = sum(1 for p in papers2 if p.full_text_available)
    if not papers1 or not papers2:
        return "Quality comparison unavailable"
    if full1 * len(papers2) != full2 * len(papers1):
        return f"Quality difference: {full1}/{len(papers1)} vs {full2}/{len(papers2)} with full text"
    return "Similar quality across both sets"


def compare_timings(papers1: Sequence[Paper], papers2: Sequence[Paper]) -> List[str]:
    years1 = [y for y in (publication_year(p.publication_date) for p in papers1) if y is not None]
    years2 = [y for y in (publication_year(p.publication_date) for p in papers2) if y is not None]
    if not years1 or not years2:
        return []
    avg1 = sum(years1) / len(years1)
    avg2 = sum(years2) / len(years2)
    if abs(avg1 - avg2) > TIMING_GAP_YEARS:
        return [f"Timing difference: studies from ~{round(avg1)} vs ~{round(avg2)}"]
    return []


def analyze_discrepancy(majority: Finding, majority_papers: Sequence[Paper],
                        minority: Finding, minority_papers: Sequence[Paper]) -> DiscrepancyAnalysis:
    methods = compare_methodologies(study_types(majority, majority_papers),
                                    study_types(minority, minority_papers))
    quality = compare_quality(majority_papers, minority_papers)
    timing = compare_timings(majority_papers, minority_papers)

    explanations: List[str] = []
    if methods:
        explanations.append(EXPLAIN_METHODS)
    if quality.startswith("Quality difference"):
        explanations.append(EXPLAIN_QUALITY)
    if timing:
        explanations.append(EXPLAIN_TIMING)
    explanations.append(EXPLAIN_HETEROGENEITY)

    return DiscrepancyAnalysis(
        methodological_differences=methods,
        quality_comparison=quality,
        timing_differences=timing,
        population_differences=[POPULATION_PLACEHOLDER],
        possible_explanations=explanations,
    )
