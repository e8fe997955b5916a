"""Tests for the flow runtime."""

import asyncio
import logging

import pytest

from xflows.bindings import InMemoryStores
from xflows.compiler import compile_flow
from xflows.models import FlowTerminatedError, RuntimeStatus, TransitionError
from xflows.registry import Registry
from xflows.runtime import create_instance, normalize_event


def trail(label):
    return f"accumulateArray:field:trail:value:{label}"


def start(definition, registry=None, **kwargs):
    return create_instance(compile_flow(definition, registry), registry, **kwargs)


class TestTransitions:
    def test_simple_transition_to_final(self, scenario_a_flow):
        runtime = start(scenario_a_flow)

        assert runtime.state_id == "a"
        assert runtime.status == RuntimeStatus.ACTIVE

        runtime.send({"type": "NEXT"})

        assert runtime.state_id == "b"
        assert runtime.get_snapshot().done

    def test_send_after_final_raises(self, scenario_a_flow):
        runtime = start(scenario_a_flow)
        runtime.send("NEXT")

        with pytest.raises(FlowTerminatedError, match="cannot process event 'NEXT'"):
            runtime.send("NEXT")

    @pytest.mark.parametrize("score,expected", [(40, "review"), (60, "approved")])
    def test_guarded_transition(self, scored_flow, score, expected):
        runtime = start(scored_flow(score))

        runtime.send("DECIDE")

        assert runtime.state_id == expected

    def test_first_enabled_candidate_wins(self, registry):
        definition = {
            "initial": "a",
            "context": {"score": 70},
            "states": {
                "a": {
                    "on": {
                        "DECIDE": [
                            {"target": "high", "guard": "greaterThan:context.score:80"},
                            {"target": "mid", "guard": "greaterThan:context.score:50"},
                            {"target": "low"},
                        ]
                    }
                },
                "high": {"type": "final"},
                "mid": {"type": "final"},
                "low": {"type": "final"},
            },
        }
        runtime = start(definition, registry)

        runtime.send("DECIDE")

        assert runtime.state_id == "mid"

    def test_failing_guard_falls_through_to_next_candidate(self, registry, caplog):
        caplog.set_level(logging.WARNING, logger="xflows.guards")
        definition = {
            "initial": "a",
            "context": {"items": [1]},
            "states": {
                "a": {
                    "on": {
                        "GO": [
                            {"target": "first", "guard": {"var": {"cat": ["context.items[", "0"]}}},
                            {"target": "fallback"},
                        ]
                    }
                },
                "first": {"type": "final"},
                "fallback": {"type": "final"},
            },
        }
        runtime = start(definition, registry)

        runtime.send("GO")

        assert runtime.state_id == "fallback"
        assert "Invalid variable path 'context.items[0'" in caplog.text

    def test_unmatched_event_is_ignored(self, scenario_a_flow, caplog):
        caplog.set_level(logging.DEBUG, logger="xflows.runtime")
        runtime = start(scenario_a_flow)

        runtime.send("UNKNOWN")

        assert runtime.state_id == "a"
        assert runtime.status == RuntimeStatus.ACTIVE
        assert "Event 'UNKNOWN' has no enabled transition in state 'a'" in caplog.text

    def test_event_requires_type(self, scenario_a_flow):
        runtime = start(scenario_a_flow)

        with pytest.raises(ValueError, match="must be a string or an object with a 'type'"):
            runtime.send({"data": 1})

    def test_normalize_event(self):
        assert normalize_event("GO") == {"type": "GO"}
        assert normalize_event({"type": "GO", "data": 1}) == {"type": "GO", "data": 1}

    def test_event_data_reaches_actions(self, onboarding_flow, registry):
        runtime = start(onboarding_flow, registry)
        runtime.send("START")

        runtime.send({"type": "SET_NAME", "data": "Ana"})

        assert runtime.state_id == "profile.email"
        assert runtime.context["user"]["name"] == "Ana"


class TestHierarchy:
    DEFINITION = {
        "initial": "outer",
        "context": {"trail": []},
        "states": {
            "outer": {
                "initial": "one",
                "entry": [trail("enter-outer")],
                "exit": [trail("exit-outer")],
                "states": {
                    "one": {
                        "entry": [trail("enter-one")],
                        "exit": [trail("exit-one")],
                        "on": {
                            "NEXT": {"target": "two", "actions": [trail("go-two")]},
                            "AGAIN": {"target": "one"},
                            "LEAVE": {"target": "away", "actions": [trail("leave")]},
                        },
                    },
                    "two": {
                        "entry": [trail("enter-two")],
                        "exit": [trail("exit-two")],
                        "on": {"NOTE": {"actions": [trail("note")]}},
                    },
                },
                "on": {"RESTART": "one"},
            },
            "away": {"type": "final", "entry": [trail("enter-away")]},
        },
    }

    def test_entering_initial_configuration(self, registry):
        runtime = start(self.DEFINITION, registry)

        assert runtime.state_id == "outer.one"
        assert runtime.active_states == ["outer", "outer.one"]
        assert runtime.context["trail"] == ["enter-outer", "enter-one"]

    def test_sibling_transition_keeps_parent(self, registry):
        runtime = start(self.DEFINITION, registry)

        runtime.send("NEXT")

        assert runtime.context["trail"][2:] == ["exit-one", "go-two", "enter-two"]
        assert runtime.active_states == ["outer", "outer.two"]

    def test_internal_transition_runs_actions_only(self, registry):
        runtime = start(self.DEFINITION, registry)
        runtime.send("NEXT")

        runtime.send("NOTE")

        assert runtime.context["trail"][-1] == "note"
        assert runtime.state_id == "outer.two"
        assert "exit-two" not in runtime.context["trail"]

    def test_ancestor_transition(self, registry):
        runtime = start(self.DEFINITION, registry)
        runtime.send("NEXT")

        runtime.send("RESTART")

        assert runtime.context["trail"][5:] == ["exit-two", "exit-outer", "enter-outer", "enter-one"]
        assert runtime.state_id == "outer.one"

    def test_self_transition_reenters(self, registry):
        runtime = start(self.DEFINITION, registry)

        runtime.send("AGAIN")

        assert runtime.context["trail"][2:] == ["exit-one", "enter-one"]

    def test_leaving_compound_for_final(self, registry):
        runtime = start(self.DEFINITION, registry)

        runtime.send("LEAVE")

        assert runtime.context["trail"][2:] == ["exit-one", "exit-outer", "leave", "enter-away"]
        assert runtime.status == RuntimeStatus.DONE

    def test_nested_final_terminates_flow(self, registry):
        definition = {
            "initial": "wizard",
            "states": {
                "wizard": {
                    "initial": "step",
                    "states": {"step": {"on": {"FINISH": "finished"}}, "finished": {"type": "final"}},
                }
            },
        }
        runtime = start(definition, registry)

        runtime.send("FINISH")

        assert runtime.state_id == "wizard.finished"
        assert runtime.status == RuntimeStatus.DONE

    def test_final_initial_state(self, registry):
        runtime = start({"initial": "done", "states": {"done": {"type": "final"}}}, registry)

        assert runtime.status == RuntimeStatus.DONE


class TestHostApi:
    def test_deferred_start(self, registry):
        runtime = start(TestHierarchy.DEFINITION, registry, start=False)

        assert runtime.context["trail"] == []

        runtime.send("NEXT")

        assert runtime.context["trail"] == ["enter-outer", "enter-one", "exit-one", "go-two", "enter-two"]

    def test_instances_are_isolated(self, onboarding_flow, registry):
        graph = compile_flow(onboarding_flow, registry)
        first = create_instance(graph, registry)
        second = create_instance(graph, registry)

        first.send("START")
        first.send({"type": "SET_NAME", "data": "Ana"})

        assert second.context["user"]["name"] == ""
        assert graph.context["user"]["name"] == ""

    def test_context_is_a_copy(self, onboarding_flow, registry):
        runtime = start(onboarding_flow, registry)

        runtime.context["steps"].append("tampered")

        assert runtime.context["steps"] == ["welcome"]

    def test_can_and_explain(self, scored_flow):
        low = start(scored_flow(40))
        high = start(scored_flow(60))

        assert not low.can("DECIDE")
        assert high.can("DECIDE")
        assert high.explain("DECIDE") is None

        reason = low.explain("DECIDE")
        assert isinstance(reason, TransitionError)
        assert str(reason) == "Event 'DECIDE' has no enabled transition in state 'review'"

    def test_stop(self, scenario_a_flow):
        runtime = start(scenario_a_flow)

        runtime.stop()

        assert runtime.status == RuntimeStatus.STOPPED
        assert not runtime.can("NEXT")
        with pytest.raises(FlowTerminatedError):
            runtime.send("NEXT")

    def test_snapshot_to_dict(self, onboarding_flow, registry):
        snapshot = start(onboarding_flow, registry).get_snapshot()

        assert snapshot.to_dict() == {
            "stateId": "welcome",
            "context": {"user": {"name": "", "email": None}, "steps": ["welcome"]},
            "status": "active",
            "view": "WelcomeScreen",
            "event": None,
        }

    def test_timers_need_an_event_loop(self, registry):
        definition = {
            "initial": "waiting",
            "states": {"waiting": {"after": {"100": "late"}}, "late": {"type": "final"}},
        }

        with pytest.raises(RuntimeError, match="run the flow inside an asyncio event loop"):
            start(definition, registry)


class TestSubscriptions:
    CHAIN = {
        "initial": "a",
        "states": {
            "a": {"on": {"NEXT": "b"}},
            "b": {"on": {"NEXT": "c"}},
            "c": {"type": "final"},
        },
    }

    def test_listener_receives_snapshots(self):
        runtime = start(self.CHAIN)
        seen = []
        unsubscribe = runtime.subscribe(lambda snapshot: seen.append(snapshot.state_id))

        runtime.send("NEXT")
        unsubscribe()
        runtime.send("NEXT")

        assert seen == ["b"]

    def test_listener_errors_are_logged(self, caplog):
        caplog.set_level(logging.ERROR, logger="xflows.runtime")
        runtime = start(self.CHAIN)

        def broken(snapshot):
            raise RuntimeError("listener exploded")

        seen = []
        runtime.subscribe(broken)
        runtime.subscribe(lambda snapshot: seen.append(snapshot.state_id))

        runtime.send("NEXT")

        assert runtime.state_id == "b"
        assert seen == ["b"]
        assert "failed on snapshot for 'b'" in caplog.text

    def test_events_sent_from_listener_are_queued(self):
        runtime = start(self.CHAIN)
        seen = []

        def listener(snapshot):
            seen.append(snapshot.state_id)
            if snapshot.state_id == "b":
                runtime.send("NEXT")

        runtime.subscribe(listener)
        runtime.send("NEXT")

        assert seen == ["b", "c"]
        assert runtime.status == RuntimeStatus.DONE


class TestStateData:
    def test_bindings_read_and_write_stores(self, registry):
        stores = InMemoryStores(url_query={"ref": "ads"})
        definition = {
            "initial": "form",
            "context": {"step": 1},
            "states": {
                "form": {
                    "binding": {
                        "inputs": [{"source": "url.query.ref", "target": "context.referral"}],
                        "outputs": [{"source": "context.step", "target": "sessionStorage.lastStep"}],
                    },
                    "on": {"NEXT": "done"},
                },
                "done": {"type": "final"},
            },
        }
        runtime = start(definition, registry, stores=stores)

        assert runtime.context["referral"] == "ads"
        assert stores.session_storage == {}

        runtime.send("NEXT")

        assert stores.session_storage == {"lastStep": 1}

    def test_computed_fields(self, registry):
        definition = {
            "initial": "counter",
            "context": {"n": 1},
            "states": {
                "counter": {
                    "logic": {
                        "computed": [
                            {"field": "first", "expression": {"var": "context.n"}, "cache": True},
                            {"field": "latest", "expression": {"var": "context.n"}},
                        ]
                    },
                    "on": {
                        "BUMP": {
                            "target": "counter",
                            "actions": [
                                {
                                    "type": "evaluateExpressionInto",
                                    "target": "n",
                                    "expression": {"+": [{"var": "context.n"}, 1]},
                                }
                            ],
                        }
                    },
                }
            },
        }
        runtime = start(definition, registry)

        runtime.send("BUMP")

        assert runtime.context == {"n": 2, "first": 1, "latest": 2}

    def test_validations_collect_errors(self, registry):
        definition = {
            "initial": "form",
            "context": {"email": ""},
            "states": {
                "form": {
                    "logic": {
                        "validations": [
                            {"field": "email", "expression": {"!!": [{"var": "context.email"}]}, "message": "is required"}
                        ]
                    },
                    "on": {"NEXT": "done"},
                },
                "done": {"type": "final"},
            },
        }

        runtime = start(definition, registry)

        assert runtime.context["errors"] == ["email: is required"]

    def test_render_view(self, registry):
        definition = {
            "initial": "form",
            "context": {"name": "Ana", "email": None},
            "states": {
                "form": {
                    "ui": {
                        "title": "Hi {{ context.name }}",
                        "fields": [
                            {"name": "email", "visible": "isNotNull:context.email"},
                            {"name": "phone"},
                        ],
                    },
                    "on": {"NEXT": "done"},
                },
                "done": {"type": "final"},
            },
        }
        runtime = start(definition, registry)

        assert runtime.render_view() == {"title": "Hi Ana", "fields": [{"name": "phone"}]}


class TestAsync:
    @pytest.mark.asyncio
    async def test_after_timer_fires(self, registry):
        definition = {
            "initial": "waiting",
            "states": {"waiting": {"after": {"20": "timeout"}}, "timeout": {"type": "final"}},
        }
        runtime = start(definition, registry)

        snapshot = await runtime.wait_for_state("timeout")

        assert snapshot.done
        assert snapshot.event_type == "xflows.after.20.waiting.0"

    @pytest.mark.asyncio
    async def test_timer_is_cancelled_on_exit(self, registry):
        definition = {
            "initial": "waiting",
            "states": {
                "waiting": {"after": {"30": "late"}, "on": {"SKIP": "other"}},
                "other": {"on": {"BACK": "waiting"}},
                "late": {"type": "final"},
            },
        }
        runtime = start(definition, registry)

        runtime.send("SKIP")
        await asyncio.sleep(0.08)

        assert runtime.state_id == "other"

    @pytest.mark.asyncio
    async def test_invoke_done(self):
        received = []

        async def lookup(input, context, event):
            received.append(input)
            return {"name": "Ana"}

        registry = Registry().register_actor("lookup", lookup)
        definition = {
            "initial": "loading",
            "context": {"userId": "u-1"},
            "states": {
                "loading": {
                    "invoke": {
                        "src": "lookup",
                        "input": {"id": "{{ context.userId }}"},
                        "assignTo": "user",
                        "onDone": "ready",
                        "onError": "failed",
                    }
                },
                "ready": {"type": "final"},
                "failed": {"type": "final"},
            },
        }
        runtime = start(definition, registry)

        snapshot = await runtime.wait_for_state("ready")

        assert received == [{"id": "u-1"}]
        assert snapshot.context["user"] == {"name": "Ana"}
        assert snapshot.event_type == "done.invoke.loading:invoke[0]"

    @pytest.mark.asyncio
    async def test_invoke_error(self, registry):
        def explode(input, context, event):
            raise ValueError("boom")

        registry.register_actor("explode", explode)
        definition = {
            "initial": "loading",
            "states": {
                "loading": {
                    "invoke": {
                        "id": "risky",
                        "src": "explode",
                        "onDone": "ready",
                        "onError": {
                            "target": "failed",
                            "actions": [{"type": "assignField", "field": "error", "from": "event.data.message"}],
                        },
                    }
                },
                "ready": {"type": "final"},
                "failed": {"type": "final"},
            },
        }
        runtime = start(definition, registry)

        snapshot = await runtime.wait_for_state("failed")

        assert "boom" in snapshot.context["error"]
        assert snapshot.event_type == "error.invoke.risky"

    @pytest.mark.asyncio
    async def test_invoke_retries_before_succeeding(self, registry):
        calls = []

        def flaky(input, context, event):
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("unreachable")
            return "ok"

        registry.register_actor("flaky", flaky)
        definition = {
            "initial": "loading",
            "states": {
                "loading": {
                    "invoke": {
                        "src": "flaky",
                        "retry": {"max": 2, "backoffMs": 1},
                        "assignTo": "result",
                        "onDone": "ready",
                        "onError": "failed",
                    }
                },
                "ready": {"type": "final"},
                "failed": {"type": "final"},
            },
        }
        runtime = start(definition, registry)

        snapshot = await runtime.wait_for_state("ready")

        assert len(calls) == 3
        assert snapshot.context["result"] == "ok"

    @pytest.mark.asyncio
    async def test_exit_cancels_pending_work(self, registry):
        cancelled = []

        def slow(name):
            async def run(input, context, event):
                try:
                    await asyncio.sleep(10)
                except asyncio.CancelledError:
                    cancelled.append(name)
                    raise
                return name

            return run

        registry.register_actor("slowA", slow("a")).register_actor("slowB", slow("b"))
        definition = {
            "initial": "loading",
            "context": {},
            "states": {
                "loading": {
                    "invoke": [
                        {"src": "slowA", "assignTo": "a", "onError": "idle"},
                        {"src": "slowB", "assignTo": "b", "onError": "idle"},
                    ],
                    "after": {"50": "timedOut"},
                    "on": {"CANCEL": "idle"},
                },
                "idle": {"on": {"RETRY": "loading"}},
                "timedOut": {"type": "final"},
            },
        }
        runtime = start(definition, registry)
        await asyncio.sleep(0.01)

        runtime.send("CANCEL")
        await asyncio.sleep(0.1)

        assert sorted(cancelled) == ["a", "b"]
        assert runtime.state_id == "idle"
        assert runtime.context == {}

    @pytest.mark.asyncio
    async def test_first_completion_exits_and_cancels_sibling(self, registry):
        cancelled = []

        async def fast(input, context, event):
            await asyncio.sleep(0.01)
            return "fast"

        async def slow(input, context, event):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append("slow")
                raise
            return "slow"

        registry.register_actor("fast", fast).register_actor("slow", slow)
        definition = {
            "initial": "loading",
            "context": {},
            "states": {
                "loading": {
                    "invoke": [
                        {"src": "slow", "assignTo": "r", "onDone": "ready", "onError": "failed"},
                        {"src": "fast", "assignTo": "r", "onDone": "ready", "onError": "failed"},
                    ]
                },
                "ready": {"on": {"RESET": "loading"}},
                "failed": {"type": "final"},
            },
        }
        runtime = start(definition, registry)

        snapshot = await runtime.wait_for_state("ready")
        await asyncio.sleep(0.05)

        assert cancelled == ["slow"]
        assert snapshot.event_type == "done.invoke.loading:invoke[1]"
        assert runtime.context == {"r": "fast"}
        assert runtime.state_id == "ready"

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_work(self, registry):
        definition = {
            "initial": "waiting",
            "states": {"waiting": {"after": {"20": "late"}}, "late": {"type": "final"}},
        }
        runtime = start(definition, registry)

        runtime.stop()
        await asyncio.sleep(0.05)

        assert runtime.state_id == "waiting"
        assert runtime.status == RuntimeStatus.STOPPED

    @pytest.mark.asyncio
    async def test_wait_for_times_out(self, scenario_a_flow):
        runtime = start(scenario_a_flow)

        with pytest.raises(TimeoutError):
            await runtime.wait_for_state("b", timeout=0.05)
