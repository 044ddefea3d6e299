"""
Tests for the answer/refresh lifecycle
"""

import asyncio

import pytest

from conftest import (
    FIXED_NOW, FakeLibrary, InMemoryPersistence, ScriptedEvidence, StaticSynthesis, claim, make_paper,
)
from research_qa.data.database import SQLPaperLibrary, SQLPersistence
from research_qa.exceptions import (
    APIError, InvalidQuestionError, MalformedResponseError, QuestionNotFoundError, ResearchQAError,
)
from research_qa.lifecycle import AnswerLifecycleManager
from research_qa.models import QuestionStatus, StatusResult
from research_qa.questions import QuestionService

QUESTION = "Is mitochondrial ATP production altered in patients?"


def _manager(settings, library, persistence, evidence, synthesis=None):
    return AnswerLifecycleManager(
        library=library, persistence=persistence, evidence=evidence,
        synthesis=synthesis or StaticSynthesis(), settings=settings,
        clock=lambda: FIXED_NOW,
    )


def _strip_times(findings):
    dumped = []
    for f in findings:
        d = f.model_dump(exclude={"date_created", "notes_last_updated"})
        for e in d["evidence"]:
            e.pop("date_added")
        dumped.append(d)
    return dumped


@pytest.fixture
def persistence():
    return InMemoryPersistence()


@pytest.fixture
def library(atp_papers):
    return FakeLibrary(atp_papers)


class TestAnswer:

    @pytest.mark.asyncio
    async def test_empty_library_is_unanswered_without_extraction(self, settings, persistence):
        """Test no candidates means UNANSWERED and zero extraction calls."""
        evidence = ScriptedEvidence()
        synthesis = StaticSynthesis()
        manager = _manager(settings, FakeLibrary(), persistence, evidence, synthesis)

        question = await manager.answer(QUESTION)

        assert question.status == QuestionStatus.UNANSWERED
        assert question.confidence == 0.0
        assert question.findings == []
        assert question.current_version == 1
        assert evidence.calls == []
        assert synthesis.calls == 0
        assert persistence.get_question(question.id).status == QuestionStatus.UNANSWERED

    @pytest.mark.asyncio
    async def test_only_keyword_matches_are_extracted(self, settings, persistence, atp_papers, atp_script):
        unrelated = make_paper("p9", "Gut microbiome composition", "Fecal samples were sequenced")
        evidence = ScriptedEvidence(atp_script)
        manager = _manager(settings, FakeLibrary(atp_papers + [unrelated]), persistence, evidence)

        question = await manager.answer(QUESTION)

        assert sorted(evidence.calls) == ["p1", "p2", "p3"]
        assert question.paper_count == 3

    @pytest.mark.asyncio
    async def test_atp_answer(self, settings, persistence, library, atp_script):
        """Test the full pipeline on the increased/decreased ATP library."""
        manager = _manager(settings, library, persistence, ScriptedEvidence(atp_script))

        question = await manager.answer(QUESTION)

        assert len(question.findings) == 2
        assert len(question.contradictions) == 1
        assert question.status == QuestionStatus.PARTIAL
        assert question.confidence == pytest.approx(0.35)
        assert question.papers_used == ["p1", "p2", "p3"]
        assert question.advisory_confidence == 0.6
        assert question.gaps == ["No randomized controlled trials found"]

        stored = persistence.get_question(question.id)
        assert [f.id for f in stored.findings] == [f.id for f in question.findings]
        assert stored.contradictions[0].severity.value == "minor"
        assert persistence.transactions == 1

    @pytest.mark.asyncio
    async def test_collaborator_failures_are_absorbed(self, settings, persistence, library, atp_script):
        """Test failing extractions count as non-relevant and failing synthesis is neutral."""
        script = dict(atp_script)
        script["p2"] = APIError("provider down", provider="anthropic")
        script["p3"] = MalformedResponseError("bad json")
        manager = _manager(settings, library, persistence, ScriptedEvidence(script),
                           StaticSynthesis(error=RuntimeError("synthesis crashed")))

        question = await manager.answer(QUESTION)

        assert len(question.findings) == 1
        assert question.findings[0].supporting_papers == ["p1"]
        assert question.status == QuestionStatus.PARTIAL
        assert question.advisory_confidence is None
        assert question.gaps == []

    @pytest.mark.asyncio
    async def test_slow_extraction_times_out(self, settings, persistence, library, atp_script):
        class SlowEvidence(ScriptedEvidence):
            async def extract(self, paper, question_text):
                if paper.id == "p3":
                    await asyncio.sleep(5)
                return await super().extract(paper, question_text)

        settings.EVIDENCE_TIMEOUT_SEC = 0.05
        manager = _manager(settings, library, persistence, SlowEvidence(atp_script))

        question = await manager.answer(QUESTION)

        assert len(question.findings) == 1
        assert question.contradictions == []

    @pytest.mark.asyncio
    async def test_empty_question_text_rejected(self, settings, persistence, library):
        manager = _manager(settings, library, persistence, ScriptedEvidence())
        with pytest.raises(InvalidQuestionError) as exc:
            await manager.answer("   ")
        assert isinstance(exc.value, ResearchQAError)
        assert persistence.questions == {}

    @pytest.mark.asyncio
    async def test_results_follow_library_order_not_completion_order(self, settings, persistence):
        """Test the first paper finishing last still yields the first finding."""
        delays = {"a": 0.05, "b": 0.02, "c": 0.0}

        class StaggeredEvidence(ScriptedEvidence):
            async def extract(self, paper, question_text):
                await asyncio.sleep(delays[paper.id])
                return await super().extract(paper, question_text)

        papers = [make_paper(pid, f"Mitochondrial cohort {pid.upper()}") for pid in "abc"]
        evidence = StaggeredEvidence({
            "a": claim("Study found lower NK cell activity"),
            "b": claim("Study found altered sleep architecture"),
            "c": claim("Study found elevated resting lactate"),
        })
        manager = _manager(settings, FakeLibrary(papers), persistence, evidence)

        question = await manager.answer(QUESTION)

        assert [f.supporting_papers for f in question.findings] == [["a"], ["b"], ["c"]]
        assert [f.description for f in question.findings] == [
            "Study found lower NK cell activity",
            "Study found altered sleep architecture",
            "Study found elevated resting lactate",
        ]
        assert question.papers_used == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_answer_many_skips_failures(self, settings, persistence, library, atp_script):
        manager = _manager(settings, library, persistence, ScriptedEvidence(atp_script))
        answered = await manager.answer_many([QUESTION, "  ", "What about mitochondrial output?"])
        assert len(answered) == 2
        assert len(persistence.questions) == 2

    @pytest.mark.asyncio
    async def test_rules_file_reaches_detector(self, settings, library, custom_guardrails):
        """Test opposite terms come from the configured rules file."""
        rose = "Studies found mitochondrial ATP production rose in patients"
        fell = "Studies found mitochondrial ATP production fell in patients"
        script = {
            "p1": claim(rose, evidence="ATP up 20%"),
            "p2": claim(rose, evidence="ATP up 12%"),
            "p3": claim(fell, evidence="ATP down 15%"),
        }

        default = await _manager(settings, library, InMemoryPersistence(), ScriptedEvidence(script)).answer(QUESTION)
        assert default.contradictions == []

        settings.GUARDRAILS_PATH = custom_guardrails
        custom = await _manager(settings, library, InMemoryPersistence(), ScriptedEvidence(script)).answer(QUESTION)
        assert len(custom.contradictions) == 1
        assert custom.contradictions[0].majority_view.paper_ids == ["p1", "p2"]


class TestRefresh:

    @pytest.mark.asyncio
    async def test_unknown_question_raises_before_work(self, settings, persistence, library):
        evidence = ScriptedEvidence()
        manager = _manager(settings, library, persistence, evidence)
        with pytest.raises(QuestionNotFoundError):
            await manager.refresh("missing")
        assert evidence.calls == []

    @pytest.mark.asyncio
    async def test_refresh_uses_whole_library(self, settings, persistence, library, atp_script):
        evidence = ScriptedEvidence(atp_script)
        manager = _manager(settings, library, persistence, evidence)
        question = await manager.answer(QUESTION)

        library.papers.append(make_paper("p4", "Gut microbiome composition"))
        evidence.calls.clear()
        refreshed = await manager.refresh(question.id)

        assert sorted(evidence.calls) == ["p1", "p2", "p3", "p4"]
        assert refreshed.paper_count == 4

    @pytest.mark.asyncio
    async def test_n_refreshes_append_n_versions(self, settings, persistence, library, atp_script):
        """Test each refresh appends one version and bumps current_version by one."""
        manager = _manager(settings, library, persistence, ScriptedEvidence(atp_script))
        question = await manager.answer(QUESTION)

        n = 4
        for _ in range(n):
            question = await manager.refresh(question.id)

        versions = persistence.versions_for_question(question.id)
        assert len(versions) == n
        assert [v.version_number for v in versions] == list(range(1, n + 1))
        assert question.current_version == n + 1
        assert persistence.get_question(question.id).current_version == n + 1

    @pytest.mark.asyncio
    async def test_snapshot_holds_prior_answer(self, settings, persistence, library, atp_script):
        manager = _manager(settings, library, persistence, ScriptedEvidence(atp_script))
        question = await manager.answer(QUESTION)

        library.papers = []
        refreshed = await manager.refresh(question.id)

        assert refreshed.status == QuestionStatus.UNANSWERED
        assert refreshed.findings == []
        version = persistence.get_version(question.id, 1)
        assert version.status == QuestionStatus.PARTIAL
        assert len(version.findings) == 2
        assert len(version.contradictions) == 1
        assert version.papers_used == ["p1", "p2", "p3"]

    @pytest.mark.asyncio
    async def test_refresh_mode_confidence(self, settings, persistence, atp_script):
        """Test an ANSWERED refresh uses the fixed refresh base confidence."""
        papers = [make_paper(f"p{i}", f"Mitochondrial study {i}") for i in range(1, 4)]
        script = {
            "p1": claim("Mitochondrial respiration appeared lower", confidence=0.9),
            "p2": claim("Lactate after exertion appeared higher", confidence=0.9),
            "p3": claim("Oxygen uptake on day two appeared reduced", confidence=0.3),
        }
        manager = _manager(settings, FakeLibrary(papers), persistence, ScriptedEvidence(script))
        question = await manager.answer("What happens to mitochondrial function?")
        assert question.status == QuestionStatus.ANSWERED
        assert question.confidence == 0.9

        refreshed = await manager.refresh(question.id)
        assert refreshed.status == QuestionStatus.ANSWERED
        assert refreshed.confidence == 0.8
        assert QuestionService(persistence).audit_status(question.id).confidence == 0.8

    @pytest.mark.asyncio
    async def test_refresh_is_idempotent(self, settings, persistence, library, atp_script):
        """Test refreshing an unchanged library reproduces findings and status."""
        manager = _manager(settings, library, persistence, ScriptedEvidence(atp_script))
        question = await manager.answer(QUESTION)

        first = await manager.refresh(question.id)
        second = await manager.refresh(question.id)

        assert _strip_times(first.findings) == _strip_times(second.findings)
        assert [c.id for c in first.contradictions] == [c.id for c in second.contradictions]
        assert (first.status, first.confidence) == (second.status, second.confidence)

    @pytest.mark.asyncio
    async def test_cancelled_refresh_persists_nothing(self, settings, persistence, library, atp_script):
        class HangingEvidence(ScriptedEvidence):
            async def extract(self, paper, question_text):
                await asyncio.sleep(10)

        manager = _manager(settings, library, persistence, ScriptedEvidence(atp_script))
        question = await manager.answer(QUESTION)

        settings.EVIDENCE_TIMEOUT_SEC = 30
        hanging = _manager(settings, library, persistence, HangingEvidence())
        task = asyncio.ensure_future(hanging.refresh(question.id))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert persistence.versions_for_question(question.id) == []
        assert persistence.get_question(question.id).current_version == 1
        assert len(persistence.findings_for_question(question.id)) == 2


class TestNotes:

    @pytest.mark.asyncio
    async def test_note_reattaches_on_exact_match(self, settings, persistence, library, atp_script):
        manager = _manager(settings, library, persistence, ScriptedEvidence(atp_script))
        service = QuestionService(persistence)
        question = await manager.answer(QUESTION)

        target = question.findings[0]
        service.update_finding_notes(target.id, "abc")
        refreshed = await manager.refresh(question.id)

        match = [f for f in refreshed.findings if f.description == target.description]
        assert match[0].user_notes == "abc"
        assert match[0].notes_last_updated == FIXED_NOW
        assert refreshed.orphaned_notes == []

    @pytest.mark.asyncio
    async def test_notes_conserved_across_refreshes(self, settings, persistence, library, atp_script):
        """Test reattached plus orphaned notes always equal the notes written."""
        evidence = ScriptedEvidence(atp_script)
        manager = _manager(settings, library, persistence, evidence)
        service = QuestionService(persistence)
        question = await manager.answer(QUESTION)

        up, down = question.findings
        service.update_finding_notes(up.id, "check dosing")
        service.update_finding_notes(down.id, "small cohort")
        written = {(up.description, "check dosing"), (down.description, "small cohort")}

        # p3's claim disappears: its finding is not regenerated
        evidence.script["p3"] = claim("Studies found no change in lactate levels", confidence=0.7)
        for _ in range(3):
            question = await manager.refresh(question.id)
            attached = {(f.description, f.user_notes) for f in question.findings if f.user_notes}
            orphaned = set(question.orphaned_notes)
            assert attached | orphaned == written
            assert not attached & orphaned
            assert len(question.orphaned_notes) == 1

        assert question.orphaned_notes == [(down.description, "small cohort")]
        stored = persistence.get_question(question.id)
        assert stored.orphaned_notes == [(down.description, "small cohort")]


class TestSQLBackedLifecycle:

    @pytest.mark.asyncio
    async def test_answer_refresh_round_trip(self, settings, db, atp_papers, atp_script):
        library = SQLPaperLibrary(db)
        library.add_papers(atp_papers)
        persistence = SQLPersistence(db)
        manager = _manager(settings, library, persistence, ScriptedEvidence(atp_script))
        service = QuestionService(persistence)

        question = await manager.answer(QUESTION)
        service.update_finding_notes(question.findings[0].id, "keep me")
        await manager.refresh(question.id)
        refreshed = await manager.refresh(question.id)

        stored = service.get_question(question.id)
        assert stored.current_version == 3
        assert [f.description for f in stored.findings] == [f.description for f in refreshed.findings]
        assert stored.findings[0].user_notes == "keep me"
        assert len(stored.contradictions) == 1
        assert [v.version_number for v in service.get_versions(question.id)] == [1, 2]
        assert service.audit_status(question.id) == StatusResult(status=stored.status,
                                                                 confidence=stored.confidence)
