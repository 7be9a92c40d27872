from jobs.job_cards import to_job_cards, to_job_summaries, to_job_summary


def _listing(**overrides):
    job = {
        "id": 42,
        "title": " Backend Engineer ",
        "slug": "backend-engineer",
        "companies": [{"name": "Acme"}],
        "locations": [{"name": "Accra", "country": "Ghana"}],
        "work_mode": {"value": "remote", "label": "Remote"},
        "job_type": "full-time",
        "experience_level": {"value": "senior", "label": "Senior"},
        "salary": {"min": 3000, "max": "4500", "currency": "USD"},
        "timing": {"posted_at": "2024-05-01"},
        "application": {"url": "https://acme.test/apply"},
        "visa_sponsorship": True,
    }
    job.update(overrides)
    return job


class TestSummary:
    def test_maps_nested_listing(self):
        s = to_job_summary(_listing())
        assert s.id == "42"
        assert s.title == "Backend Engineer"
        assert s.company == "Acme"
        assert s.location == "Accra"
        assert s.country == "Ghana"
        assert s.work_mode == "remote"
        assert s.job_type == "full-time"
        assert s.experience_level == "senior"
        assert s.salary == "USD 3,000 - 4,500"
        assert s.apply_url == "https://acme.test/apply"
        assert s.has_visa_sponsorship is True

    def test_preformatted_salary_and_flat_fields(self):
        s = to_job_summary(_listing(companies=None, company="Globex", salary={"formatted": "Competitive"}))
        assert s.company == "Globex"
        assert s.salary == "Competitive"

    def test_listing_without_id_is_skipped(self):
        assert to_job_summary({"title": "no id"}) is None
        summaries = to_job_summaries([_listing(id="a"), {"title": "x"}, "junk", _listing(id="b")])
        assert [s.id for s in summaries] == ["a", "b"]

    def test_none_is_empty(self):
        assert to_job_summaries(None) == []


class TestCards:
    def test_saved_state_annotates_without_reordering(self):
        jobs = to_job_summaries([_listing(id="a"), _listing(id="b"), _listing(id="c")])
        cards = to_job_cards(jobs, is_saved=lambda i: i == "b", is_pending=lambda i: i == "c")

        assert [c["id"] for c in cards] == ["a", "b", "c"]
        assert [c["is_saved"] for c in cards] == [False, True, False]
        assert [c["save_pending"] for c in cards] == [False, False, True]
