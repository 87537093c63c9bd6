"""Tests for the client message timeline and progress extraction."""

from devcollab.client.timeline import MessageTimeline, progress_of


def msg(message_id, seq=None, content="", **fields):
    return {"id": message_id, "seq": seq, "content": content, **fields}


class TestMerge:
    def test_same_id_is_kept_once(self):
        timeline = MessageTimeline()

        assert timeline.merge(msg("m1", 1, "hi")) is True
        assert timeline.merge(msg("m1", 1, "hi")) is False

        assert len(timeline) == 1
        assert "m1" in timeline

    def test_later_copy_fills_fields_without_dropping_others(self):
        timeline = MessageTimeline()
        timeline.merge(msg("m1", 1, "hi", read_by=[{"user_id": "a"}]))

        timeline.merge({"id": "m1", "read_by": [{"user_id": "a"}, {"user_id": "b"}]})

        [entry] = timeline.messages()
        assert entry["content"] == "hi"
        assert entry["seq"] == 1
        assert len(entry["read_by"]) == 2

    def test_none_does_not_erase(self):
        timeline = MessageTimeline()
        timeline.merge(msg("m1", 1, "hi", github_link="https://git.test/x"))

        timeline.merge(msg("m1", 1, "hi", github_link=None))

        assert timeline.messages()[0]["github_link"] == "https://git.test/x"

    def test_ordered_by_seq_regardless_of_arrival(self):
        timeline = MessageTimeline()
        timeline.merge_many([msg("c", 3), msg("a", 1), msg("b", 2)])

        assert [m["id"] for m in timeline.messages()] == ["a", "b", "c"]
        assert timeline.max_seq == 3

    def test_unsequenced_entries_follow_in_arrival_order(self):
        timeline = MessageTimeline()
        timeline.merge(msg("late"))
        timeline.merge(msg("x", 2))
        timeline.merge(msg("early"))
        timeline.merge(msg("y", 1))

        assert [m["id"] for m in timeline.messages()] == ["y", "x", "late", "early"]

    def test_merge_many_counts_new(self):
        timeline = MessageTimeline()
        timeline.merge(msg("a", 1))

        assert timeline.merge_many([msg("a", 1), msg("b", 2), msg("c", 3)]) == 2

    def test_empty_timeline(self):
        timeline = MessageTimeline()

        assert timeline.messages() == []
        assert timeline.max_seq is None
        assert timeline.latest_progress() is None


class TestProgress:
    def test_structured_field_wins(self):
        message = msg(
            "m1",
            1,
            'Module "Lexer" submitted with 90% completion.',
            project_progress={"completion_percentage": 45, "deadline": "2026-12-31T00:00:00Z"},
        )

        reading = progress_of(message)

        assert reading.completion_percentage == 45
        assert reading.deadline == "2026-12-31T00:00:00Z"
        assert reading.message_id == "m1"

    def test_text_fallback(self):
        reading = progress_of(msg("m1", 1, 'Module "Parser" submitted with 75% completion.'))

        assert reading.completion_percentage == 75
        assert reading.deadline is None

    def test_plain_message_has_none(self):
        assert progress_of(msg("m1", 1, "lunch?")) is None

    def test_latest_by_seq(self):
        timeline = MessageTimeline()
        timeline.merge(msg("b", 5, project_progress={"completion_percentage": 60}))
        timeline.merge(msg("a", 2, project_progress={"completion_percentage": 20}))
        timeline.merge(msg("c", 6, "unrelated"))

        assert timeline.latest_progress().completion_percentage == 60

    def test_created_at_breaks_missing_seq(self):
        timeline = MessageTimeline()
        timeline.merge(
            msg(
                "newer",
                content='Module "B" submitted with 30% completion.',
                created_at="2026-03-02T10:00:00+00:00",
            )
        )
        timeline.merge(
            msg(
                "older",
                content='Module "A" submitted with 80% completion.',
                created_at="2026-03-01T10:00:00+00:00",
            )
        )

        assert timeline.latest_progress().message_id == "newer"
