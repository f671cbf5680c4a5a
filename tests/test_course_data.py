"""Tests for CourseDataCoordinator: fetching, paging, stale results and live updates."""

import asyncio

import pytest

from catalog.schemas.filters import FilterSet, PriceRange
from catalog.services.change_feed import change_feed
from catalog.services.course_data import CourseDataCoordinator
from catalog.services.course_service import ConnectivityError, DataServiceError


def run(coro):
    return asyncio.run(coro)


async def wait_for(predicate, attempts=200):
    """Yield to the loop until predicate() holds."""
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not reached")


def _delete_courses(db, titles):
    from catalog.models.course import Course

    for course in db.query(Course).filter(Course.title.in_(titles)).all():
        db.delete(course)
    db.commit()


class TestInitialFetch:
    def test_search_scenario_first_page(self, sql_service, catalog_courses):
        async def scenario():
            async with CourseDataCoordinator(sql_service, search_term="python") as coordinator:
                return coordinator.state

        state = run(scenario())
        assert [c.title for c in state.courses] == [f"Python Course {i:02d}" for i in range(1, 11)]
        assert state.total_count == 23
        assert state.total_pages == 3
        assert state.current_page == 1
        assert state.has_next_page is True
        assert state.has_prev_page is False
        assert state.loading is False
        assert state.error is None

    def test_loading_until_first_fetch(self, sql_service):
        coordinator = CourseDataCoordinator(sql_service)
        assert coordinator.loading is True
        assert coordinator.courses == []

    def test_empty_result(self, sql_service, catalog_courses):
        async def scenario():
            async with CourseDataCoordinator(sql_service, search_term="no such course") as coordinator:
                return coordinator.state

        state = run(scenario())
        assert state.courses == []
        assert state.total_count == 0
        assert state.total_pages == 0
        assert state.has_next_page is False
        assert state.has_prev_page is False

    def test_state_change_callback(self, sql_service, catalog_courses):
        seen = []

        async def scenario():
            async with CourseDataCoordinator(sql_service, on_state_change=seen.append):
                pass

        run(scenario())
        assert [s.loading for s in seen] == [True, False]
        assert seen[-1].total_count == 28


class TestNavigation:
    def test_next_and_prev_page(self, sql_service, catalog_courses):
        async def scenario():
            async with CourseDataCoordinator(sql_service, search_term="python") as coordinator:
                await coordinator.next_page()
                page_two = coordinator.state
                await coordinator.next_page()
                assert coordinator.next_page() is None  # already on last page
                last = coordinator.state
                await coordinator.prev_page()
                return page_two, last, coordinator.state

        page_two, last, back = run(scenario())
        assert page_two.current_page == 2
        assert page_two.courses[0].title == "Python Course 11"
        assert last.current_page == 3
        assert [c.title for c in last.courses] == ["Python Course 21", "Python Course 22", "Python Course 23"]
        assert last.has_next_page is False
        assert back.current_page == 2

    def test_prev_page_on_first_page_is_noop(self, gated_service, catalog_courses):
        async def scenario():
            async with CourseDataCoordinator(gated_service) as coordinator:
                assert coordinator.prev_page() is None
                return len(gated_service.page_calls)

        assert run(scenario()) == 1

    def test_go_to_page_is_clamped(self, sql_service, catalog_courses):
        async def scenario():
            async with CourseDataCoordinator(sql_service, search_term="python") as coordinator:
                await coordinator.go_to_page(99)
                return coordinator.state

        state = run(scenario())
        assert state.current_page == 3
        assert len(state.courses) == 3

    def test_page_change_hook_fires(self, sql_service, catalog_courses):
        pages = []

        async def scenario():
            async with CourseDataCoordinator(sql_service, on_page_change=pages.append) as coordinator:
                await coordinator.next_page()
                await coordinator.go_to_page(3)
                await coordinator.prev_page()

        run(scenario())
        assert pages == [2, 3, 2]


class TestInputChanges:
    def test_search_change_resets_to_first_page(self, gated_service, catalog_courses):
        async def scenario():
            async with CourseDataCoordinator(gated_service) as coordinator:
                await coordinator.go_to_page(3)
                calls_before = len(gated_service.page_calls)
                await coordinator.set_search_term("python")
                return coordinator.state, gated_service.page_calls[calls_before:]

        state, calls = run(scenario())
        assert state.current_page == 1
        # exactly one fetch, at the first page
        assert [(q.search_term, offset) for q, offset, _ in calls] == [("python", 0)]

    def test_filter_change_resets_to_first_page(self, gated_service, catalog_courses):
        pages = []

        async def scenario():
            async with CourseDataCoordinator(gated_service, on_page_change=pages.append) as coordinator:
                await coordinator.next_page()
                calls_before = len(gated_service.page_calls)
                await coordinator.set_filters(FilterSet(branch="Makati"))
                return coordinator.state, gated_service.page_calls[calls_before:]

        state, calls = run(scenario())
        assert state.current_page == 1
        assert len(calls) == 1
        assert calls[0][1] == 0
        assert dict(calls[0][0].equals) == {"branch": "Makati"}
        assert pages == [2, 1]
        assert all(c.branch == "Makati" for c in state.courses)

    def test_unchanged_inputs_do_not_fetch(self, gated_service, catalog_courses):
        async def scenario():
            async with CourseDataCoordinator(gated_service, search_term="python") as coordinator:
                assert coordinator.set_search_term("python") is None
                assert coordinator.set_filters(FilterSet()) is None
                return len(gated_service.page_calls)

        assert run(scenario()) == 1

    def test_changes_before_mount_are_fetched_on_mount(self, gated_service, catalog_courses):
        async def scenario():
            coordinator = CourseDataCoordinator(gated_service)
            assert coordinator.set_search_term("python") is None
            async with coordinator:
                return coordinator.state

        state = run(scenario())
        assert state.total_count == 23
        assert len(gated_service.page_calls) == 1

    def test_count_and_page_use_same_snapshot(self, gated_service, catalog_courses):
        async def scenario():
            async with CourseDataCoordinator(gated_service) as coordinator:
                await coordinator.set_filters(FilterSet(price_range=PriceRange.UP_TO_5000))

        run(scenario())
        for counted, (paged, _, _) in zip(gated_service.count_calls, gated_service.page_calls):
            assert counted == paged


class TestStaleResponses:
    def test_latest_filter_wins_when_earlier_response_arrives_late(self, gated_service, catalog_courses):
        async def scenario():
            async with CourseDataCoordinator(gated_service) as coordinator:
                gate = gated_service.gates["design"] = asyncio.Event()

                slow = coordinator.set_search_term("design")
                await wait_for(lambda: any(q.search_term == "design" for q in gated_service.count_calls))

                fast = coordinator.set_search_term("python")
                await fast
                after_fast = coordinator.state

                gate.set()
                await slow
                return after_fast, coordinator.state

        after_fast, final = run(scenario())
        assert after_fast.total_count == 23
        assert after_fast.loading is False
        assert final == after_fast
        assert all("Python" in c.title for c in final.courses)

    def test_loading_stays_true_while_latest_fetch_pending(self, gated_service, catalog_courses):
        async def scenario():
            async with CourseDataCoordinator(gated_service) as coordinator:
                gate = gated_service.gates["python"] = asyncio.Event()
                pending = coordinator.set_search_term("python")
                await wait_for(lambda: len(gated_service.count_calls) == 2)
                loading = coordinator.loading
                gate.set()
                await pending
                return loading, coordinator.loading

        assert run(scenario()) == (True, False)


class TestErrors:
    def test_error_keeps_last_good_page(self, flaky_service, catalog_courses):
        async def scenario():
            async with CourseDataCoordinator(flaky_service, search_term="python") as coordinator:
                good = coordinator.state
                flaky_service.error = DataServiceError("Could not load courses. Please try again.")
                await coordinator.next_page()
                return good, coordinator.state

        good, failed = run(scenario())
        assert failed.error == "Could not load courses. Please try again."
        assert failed.fatal_error is None
        assert failed.loading is False
        assert failed.courses == good.courses
        assert failed.total_count == good.total_count

    def test_unexpected_error_becomes_message(self, flaky_service, catalog_courses):
        async def scenario():
            async with CourseDataCoordinator(flaky_service) as coordinator:
                flaky_service.error = RuntimeError()
                await coordinator.refetch()
                return coordinator.state

        assert run(scenario()).error == "An error occurred"

    def test_connectivity_failure_is_fatal_until_refetch_succeeds(self, flaky_service, catalog_courses):
        async def scenario():
            async with CourseDataCoordinator(flaky_service) as coordinator:
                flaky_service.error = ConnectivityError("Could not connect to the course database.")
                await coordinator.refetch()
                broken = coordinator.state
                flaky_service.error = None
                await coordinator.refetch()
                return broken, coordinator.state

        broken, recovered = run(scenario())
        assert broken.fatal_error == "Could not connect to the course database."
        assert broken.error == broken.fatal_error
        assert recovered.fatal_error is None
        assert recovered.error is None
        assert recovered.total_count == 28

    def test_sql_failure_is_wrapped(self, catalog_courses):
        from sqlalchemy import create_engine
        from sqlalchemy.orm import sessionmaker

        from catalog.services.course_service import SqlCourseDataService

        # Valid database without the courses table
        broken = SqlCourseDataService(sessionmaker(bind=create_engine("sqlite://")))

        async def scenario():
            async with CourseDataCoordinator(broken) as coordinator:
                return coordinator.state

        state = run(scenario())
        assert state.error is not None
        assert "OperationalError" not in state.error
        assert state.courses == []


class TestSubscriptionLifetime:
    def test_one_subscription_per_mount(self, sql_service, catalog_courses):
        async def scenario():
            coordinator = CourseDataCoordinator(sql_service)
            before = change_feed.subscriber_count("courses")
            await coordinator.mount()
            await coordinator.mount()
            await coordinator.set_search_term("python")
            await coordinator.next_page()
            during = change_feed.subscriber_count("courses")
            await coordinator.close()
            await coordinator.close()
            return before, during, change_feed.subscriber_count("courses")

        before, during, after = run(scenario())
        assert during == before + 1
        assert after == before

    def test_cannot_remount_after_close(self, sql_service, catalog_courses):
        async def scenario():
            coordinator = CourseDataCoordinator(sql_service)
            await coordinator.mount()
            await coordinator.close()
            with pytest.raises(RuntimeError):
                await coordinator.mount()

        run(scenario())


class TestLiveUpdates:
    def test_deletion_refetches_current_page(self, db_session, sql_service, catalog_courses):
        async def scenario():
            async with CourseDataCoordinator(sql_service, search_term="python") as coordinator:
                await coordinator.next_page()
                assert coordinator.total_pages == 3

                _delete_courses(db_session, [f"Python Course {i:02d}" for i in range(16, 24)])
                await coordinator.settle()
                return coordinator.state

        state = run(scenario())
        assert state.total_count == 15
        assert state.total_pages == 2
        assert state.current_page == 2
        assert [c.title for c in state.courses] == [f"Python Course {i}" for i in range(11, 16)]
        assert state.has_next_page is False

    def test_insert_matching_filters_appears(self, db_session, sql_service, catalog_courses):
        from catalog.models.course import Course

        async def scenario():
            async with CourseDataCoordinator(sql_service, search_term="python") as coordinator:
                db_session.add(Course(title="Python Course 00", technology="Python", price=10))
                db_session.commit()
                await coordinator.settle()
                return coordinator.state

        state = run(scenario())
        assert state.total_count == 24
        assert state.courses[0].title == "Python Course 00"

    def test_update_moving_record_out_of_filter(self, db_session, sql_service, catalog_courses):
        from catalog.models.course import Course

        async def scenario():
            async with CourseDataCoordinator(sql_service, filters=FilterSet(technology="Python")) as coordinator:
                course = db_session.query(Course).filter(Course.title == "Python Course 01").one()
                course.technology = "UI/UX Design"
                db_session.commit()
                await coordinator.settle()
                return coordinator.state

        state = run(scenario())
        assert state.total_count == 22
        assert "Python Course 01" not in [c.title for c in state.courses]

    def test_shrink_below_current_page_moves_to_last_page(self, db_session, sql_service, catalog_courses):
        async def scenario():
            async with CourseDataCoordinator(sql_service, search_term="python") as coordinator:
                await coordinator.go_to_page(3)
                _delete_courses(db_session, [f"Python Course {i:02d}" for i in range(14, 24)])
                await coordinator.settle()
                return coordinator.state

        state = run(scenario())
        assert state.total_count == 13
        assert state.current_page == 2
        assert [c.title for c in state.courses] == ["Python Course 11", "Python Course 12", "Python Course 13"]
        assert state.loading is False

    def test_no_refetch_after_close(self, db_session, gated_service, catalog_courses):
        from catalog.models.course import Course

        async def scenario():
            coordinator = CourseDataCoordinator(gated_service)
            await coordinator.mount()
            await coordinator.close()
            db_session.add(Course(title="After Close", price=1))
            db_session.commit()
            await asyncio.sleep(0.05)
            return len(gated_service.page_calls)

        assert run(scenario()) == 1


class TestRefetch:
    def test_settle_waits_for_direct_refetch(self, gated_service, catalog_courses):
        async def scenario():
            async with CourseDataCoordinator(gated_service) as coordinator:
                gate = gated_service.gates[""] = asyncio.Event()
                pending = asyncio.create_task(coordinator.refetch())
                await wait_for(lambda: len(gated_service.count_calls) == 2)

                settling = asyncio.create_task(coordinator.settle())
                await asyncio.sleep(0.05)
                assert not settling.done()

                gate.set()
                await settling
                assert len(gated_service.page_calls) == 2
                assert coordinator.loading is False
                await pending

        run(scenario())

    def test_close_cancels_pending_refetch(self, gated_service, catalog_courses):
        async def scenario():
            coordinator = CourseDataCoordinator(gated_service)
            await coordinator.mount()
            gated_service.gates[""] = asyncio.Event()
            pending = asyncio.create_task(coordinator.refetch())
            await wait_for(lambda: len(gated_service.count_calls) == 2)

            await coordinator.close()
            await pending
            return len(gated_service.page_calls)

        assert run(scenario()) == 1

    def test_refetch_before_mount_does_nothing(self, gated_service, catalog_courses):
        async def scenario():
            coordinator = CourseDataCoordinator(gated_service)
            await coordinator.refetch()
            return coordinator.loading, len(gated_service.count_calls)

        assert run(scenario()) == (True, 0)
