"""Interactive CLI application."""
import argparse
import asyncio
import sys

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from exam_trainer.config import EXAM_CONFIG, load_settings
from exam_trainer.db import get_setting, init_db, load_progress, save_progress, set_setting
from exam_trainer.log import setup_logging
from exam_trainer.models import ROUND_TITLES, Mode, QuestionState, RoundStatus, RoundType, SyncStatus
from exam_trainer.questions import QuestionBankError, load_questions
from exam_trainer.quiz import QuizSession, Step
from exam_trainer.scheduler import get_smart_stats
from exam_trainer.stats import (
    calculate_overall_stats, get_exam_by_id, get_recent_history, get_result_color,
    get_result_label, get_weak_points,
)
from exam_trainer.sync import SyncReconciler, make_remote
from exam_trainer.timer import format_time, format_time_verbose

console = Console()

EXIT_WORDS = ("q", "menu")

SYNC_ICONS = {
    SyncStatus.LOADING: "⏳",
    SyncStatus.SYNCING: "🔄",
    SyncStatus.CONNECTED: "✅",
    SyncStatus.OFFLINE: "📡",
    SyncStatus.ERROR: "❌",
}

REVIEW_CHOICES = {
    "all": RoundType.REVIEW_ALL,
    "wrong": RoundType.REVIEW_WRONG,
    "notsure": RoundType.REVIEW_NOT_SURE,
    "dontknow": RoundType.REVIEW_DONT_KNOW,
}


class SessionExitRequested(Exception):
    """The user asked to leave the current round."""


async def ask(prompt: str, **kwargs) -> str:
    # Prompts block, so they run off the event loop; sync callbacks keep running meanwhile.
    return await asyncio.to_thread(Prompt.ask, prompt, **kwargs)


async def session_prompt(prompt: str, **kwargs) -> str:
    answer = await ask(prompt, **kwargs)
    if answer.strip().lower() in EXIT_WORDS:
        raise SessionExitRequested()
    return answer


async def session_int_prompt(prompt: str, choices: list[str]) -> int:
    return int(await session_prompt(prompt, choices=choices))


async def confirm(prompt: str) -> bool:
    return (await ask(prompt, choices=["y", "n"], default="n")) == "y"


class TrainerApp:
    """Wires the question bank, progress store, round state machine and sync together."""

    def __init__(self, settings, bank, progress, remote=None, rng=None):
        self.settings = settings
        self.bank = bank
        self.progress = progress
        self.session = QuizSession(bank, progress, rng=rng, on_change=self.persist)
        self.reconciler = SyncReconciler(
            progress,
            remote,
            profile_prefix=settings.profile_prefix,
            on_data_change=self.on_remote_change,
        )

    def persist(self) -> None:
        save_progress(self.settings.db_path, self.progress)
        self.reconciler.schedule_save()

    def on_remote_change(self) -> None:
        save_progress(self.settings.db_path, self.progress)
        console.print("[dim]📥 Progress updated from the cloud[/dim]")

    async def start_sync(self) -> None:
        await self.reconciler.start(get_setting(self.settings.db_path, "profile_id"))
        set_setting(self.settings.db_path, "profile_id", self.reconciler.profile_id)

    async def run(self) -> int:
        await self.start_sync()
        show_welcome(len(self.bank))
        try:
            while True:
                show_menu(self.reconciler.status)
                choice = (await ask("\n[bold]>[/bold]", default="learn")).strip().lower()
                if choice in ("quit", "exit", "q"):
                    console.print("[dim]Good luck on your exam![/dim]")
                    break
                handler = COMMANDS.get(choice)
                if handler is None:
                    console.print("[red]Unknown command. Try again.[/red]")
                    continue
                try:
                    await handler(self)
                except SessionExitRequested:
                    console.print("[dim]Back to menu.[/dim]")
                except KeyboardInterrupt:
                    console.print("\n[dim]Use 'quit' to exit.[/dim]")
                except Exception as e:
                    console.print(f"[red]Error: {e}[/red]")
        finally:
            await self.reconciler.close()
        return 0


def show_welcome(question_count: int):
    console.print(Panel(
        f"[bold]Exam Trainer[/bold]\n[dim]{question_count} questions loaded[/dim]",
        title="Welcome", border_style="blue",
    ))


def show_menu(sync_status: SyncStatus):
    console.print(f"\n[bold]Commands:[/bold]  [dim]sync {SYNC_ICONS[sync_status]}[/dim]")
    commands = [
        ("learn", "Learning mode: answer shown right away"),
        ("exam", "Exam mode: timed, results at the end"),
        ("smart", "Adaptive spaced-repetition session"),
        ("review", "Back to the last results and review rounds"),
        ("weak", "Drill questions you got wrong before"),
        ("flagged", "Drill flagged questions"),
        ("stats", "Statistics and weak points"),
        ("history", "Past exams"),
        ("reshuffle", "Regenerate exam sets"),
        ("sync", "Cloud sync profile"),
        ("clear", "Clear history and weak points"),
        ("reset", "Erase all progress"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<14}[/cyan] {desc}")


# --- rounds ---

def render_question(session: QuizSession):
    qid = session.current_question_id
    question = session.current_question
    state = session.current_state or QuestionState()
    meta = session.progress.get_meta(qid)

    title = f"[Q{qid}] {session.position}/{len(session)}"
    if session.exam_timer.visible:
        title += f"  ⏰ {format_time(session.exam_timer.remaining())}"
    marks = []
    if meta.flagged:
        marks.append("🚩")
    if state.dont_know:
        marks.append("❓ don't know")
    if state.not_sure:
        marks.append("⚠️ not sure")
    console.print(Panel(question.text, title=title, subtitle=" ".join(marks) or None, border_style="cyan"))
    for i, (letter, text) in enumerate(session.answer_order_for(qid), 1):
        marker = "[bold]●[/bold]" if state.selected_answer == letter else " "
        console.print(f"  [cyan]{i})[/cyan] {marker} {text}")
    if meta.note:
        console.print(f"[dim]📝 {meta.note}[/dim]")
    if session.mode in (Mode.LEARNING, Mode.SMART) and state.answered:
        show_question_result(question, state)


def show_question_result(question, state: QuestionState):
    if question.is_correct(state.selected_answer):
        console.print("[green]Correct![/green]")
    else:
        console.print(f"[red]Incorrect.[/red] Answer: [green]{question.correct_text()}[/green]")
    if question.explanation:
        console.print(f"[dim]{question.explanation}[/dim]")


async def run_round(app: TrainerApp) -> bool:
    """Drive the current round. Returns True if it completed, False if abandoned."""
    session = app.session
    console.print("[dim]1-9 select, n/Enter next, b back, ? don't know, ~ not sure, f flag, note, q exit[/dim]")
    while session.status == RoundStatus.IN_PROGRESS:
        render_question(session)
        try:
            raw = (await session_prompt("Answer", default="n")).strip()
        except SessionExitRequested:
            if await confirm("Leave this round? Progress in it is discarded"):
                session.exit_round()
                return False
            continue
        if session.check_time():
            console.print("[red]⏰ Time is up![/red]")
            break
        state = session.current_state or QuestionState()
        cmd = raw.lower()
        if cmd.isdigit():
            order = session.answer_order_for(session.current_question_id)
            index = int(cmd) - 1
            if not 0 <= index < len(order):
                console.print("[red]No such answer.[/red]")
                continue
            letter = order[index][0]
            session.update_draft(letter, state.dont_know, state.not_sure)
            session.advance(letter)
        elif cmd in ("n", ""):
            if session.advance(state.selected_answer) == Step.IGNORED:
                console.print("[yellow]Select an answer first.[/yellow]")
        elif cmd == "b":
            session.retreat()
        elif cmd == "?":
            session.update_draft(state.selected_answer, not state.dont_know, state.not_sure)
        elif cmd == "~":
            session.update_draft(state.selected_answer, state.dont_know, not state.not_sure)
        elif cmd == "f":
            flagged = session.toggle_flag()
            console.print("🚩 Flagged" if flagged else "Flag removed")
        elif cmd == "note":
            note = await ask("Note", default=session.progress.get_meta(session.current_question_id).note)
            session.save_note(note)
            console.print("[green]✓ Saved[/green]")
        else:
            console.print("[red]Unknown input.[/red]")
    return session.status == RoundStatus.COMPLETED


def show_results(session: QuizSession):
    result = session.results()
    pct = result["pct"]
    color = get_result_color(pct, EXAM_CONFIG.pass_threshold)
    mode = session.mode.value if session.mode else ""

    def ids(values):
        return ", ".join(str(v) for v in values) if values else "-"

    console.print(Panel(
        f"[bold {color}]{get_result_label(pct)}[/bold {color}] (min. {EXAM_CONFIG.pass_threshold}%)\n"
        f"Correct: {result['correct']}/{result['total']} ({pct}%)\n"
        f"❌ Wrong: {ids(result['wrong'])}\n"
        f"⚠️ Correct but not sure: {ids(result['correct_but_not_sure'])}\n"
        f"❓ Don't know: {ids(result['dont_know'])}\n"
        f"⏱️ Time: {format_time_verbose(result['total_time'])} ({result['avg_time']}s/question)",
        title=f"{ROUND_TITLES[session.round_type]} ({mode})",
        border_style=color,
    ))


async def results_loop(app: TrainerApp):
    """Results screen with review sub-rounds, always able to return to the base result."""
    session = app.session
    while True:
        show_results(session)
        choices = ["menu"]
        if session.base_state is not None:
            for key, review_type in REVIEW_CHOICES.items():
                count = len(session.get_review_set(review_type))
                if count:
                    console.print(f"  [cyan]{key:<10}[/cyan] review {ROUND_TITLES[review_type].lower()} ({count})")
                    choices.append(key)
            if session.round_type != RoundType.BASE:
                console.print(f"  [cyan]{'base':<10}[/cyan] back to the main result")
                choices.append("base")
        choice = await ask("Next", choices=choices, default="menu")
        if choice == "menu":
            return
        if choice == "base":
            session.back_to_base()
            continue
        if not session.start_review(REVIEW_CHOICES[choice]):
            console.print("[yellow]Nothing to review.[/yellow]")
            continue
        if not await run_round(app):
            return


async def play(app: TrainerApp):
    if await run_round(app):
        await results_loop(app)


# --- commands ---

def show_smart_stats(app: TrainerApp):
    s = get_smart_stats(app.bank.ids, app.progress.spaced_repetition)
    table = Table(title="Smart mode")
    for col in ("Mastered", "Learning", "Struggling", "New"):
        table.add_column(col, justify="right")
    table.add_row(str(s["mastered"]), str(s["learning"]), str(s["struggling"]), str(s["not_started"]))
    console.print(table)
    console.print(f"  [bold]{s['mastered_pct']}%[/bold] mastered")


def show_exam_sets(app: TrainerApp):
    done = app.progress.completed_for(app.session.mode)
    table = Table(title="Exam sets")
    table.add_column("#", justify="right")
    table.add_column("Questions", justify="right")
    table.add_column("Status")
    for i, exam in enumerate(app.progress.exams):
        table.add_row(str(i + 1), str(len(exam)), "[green]Done[/green]" if i in done else "")
    console.print(table)


async def cmd_practice(app: TrainerApp, mode: Mode):
    session = app.session
    session.select_mode(mode)
    if mode == Mode.SMART:
        show_smart_stats(app)
        if not await confirm("Start a smart session?"):
            return
    else:
        show_exam_sets(app)
        choices = [str(i + 1) for i in range(len(app.progress.exams))]
        index = await session_int_prompt("Select exam", choices=choices)
        session.select_exam(index - 1)
    if not session.start_exam(app.settings.session_size):
        console.print("[yellow]No questions available![/yellow]")
        return
    await play(app)


async def cmd_learn(app: TrainerApp):
    await cmd_practice(app, Mode.LEARNING)


async def cmd_exam(app: TrainerApp):
    await cmd_practice(app, Mode.EXAM)


async def cmd_smart(app: TrainerApp):
    await cmd_practice(app, Mode.SMART)


async def cmd_review(app: TrainerApp):
    if not app.session.back_to_base():
        console.print("[yellow]Finish a round first.[/yellow]")
        return
    await results_loop(app)


async def cmd_weak(app: TrainerApp):
    if not app.session.start_weak_review():
        console.print("[green]No weak points yet![/green]")
        return
    await play(app)


async def cmd_flagged(app: TrainerApp):
    if not app.session.start_flagged_review():
        console.print("[yellow]No flagged questions.[/yellow]")
        return
    await play(app)


async def cmd_stats(app: TrainerApp):
    progress = app.progress
    s = calculate_overall_stats(progress.history)
    console.print(Panel(
        f"Exams: [bold]{s['total_exams']}[/bold]  |  Avg score: [bold]{s['avg_score']}%[/bold]  |  "
        f"Avg time: [bold]{s['avg_time']}s[/bold]  |  Pass rate: [bold]{s['pass_rate']}%[/bold]",
        title="Statistics", border_style="blue",
    ))
    recent = get_recent_history(progress.history)
    if recent:
        console.print("  Recent: " + " ".join(
            f"[{get_result_color(h.pct)}]{h.pct}%[/{get_result_color(h.pct)}]" for h in recent
        ))
    weak = get_weak_points(progress.wrong_counts)
    if weak:
        table = Table(title="Weak points")
        table.add_column("Question")
        table.add_column("Wrong", justify="right")
        for w in weak:
            table.add_row(f"Q{w['qid']}", f"{w['count']}x")
        console.print(table)
    flagged = progress.flagged_question_ids()
    if flagged:
        console.print("  🚩 " + ", ".join(f"Q{qid}" for qid in flagged))
    show_smart_stats(app)


async def cmd_history(app: TrainerApp):
    records = list(reversed(app.progress.exam_history[-20:]))
    if not records:
        console.print("[yellow]No exams recorded yet.[/yellow]")
        return
    table = Table(title="Exam history")
    table.add_column("#", justify="right")
    table.add_column("Date")
    table.add_column("Mode")
    table.add_column("Result", justify="right")
    for i, r in enumerate(records, 1):
        pct = r.results.get("pct", 0)
        color = get_result_color(pct)
        table.add_row(str(i), r.date[:16].replace("T", " "), r.mode, f"[{color}]{pct}%[/{color}]")
    console.print(table)
    choice = await ask("Details for #", choices=["menu"] + [str(i) for i in range(1, len(records) + 1)], default="menu")
    if choice == "menu":
        return
    show_exam_details(get_exam_by_id(app.progress.exam_history, records[int(choice) - 1].id))


def show_exam_details(record):
    if record is None:
        return
    results = record.results
    label = get_result_label(results.get("pct", 0))
    exam = f"Exam {record.exam_index + 1}" if record.exam_index is not None else "-"
    console.print(Panel(
        f"{record.date[:16].replace('T', ' ')} • {record.mode}\n"
        f"{label}: {results.get('correct', 0)}/{results.get('total', 0)} ({results.get('pct', 0)}%)\n"
        f"Time: {record.duration // 60}m  •  {exam}",
        title="Exam details",
    ))
    for q in record.questions:
        mark = "[green]✅[/green]" if q.get("correct") else "[red]❌[/red]"
        console.print(f"  Q{q['qid']:<6} {mark} {q.get('answer') or '-'}")


async def cmd_reshuffle(app: TrainerApp):
    if app.progress.completed_learning or app.progress.completed_exam:
        if not await confirm("This resets exam completion. Continue?"):
            return
    app.session.reshuffle_exams()
    console.print("[green]Exam sets regenerated.[/green]")


async def cmd_sync(app: TrainerApp):
    reconciler = app.reconciler
    console.print(Panel(
        f"Profile: [bold]{reconciler.profile_id}[/bold]\nStatus: {SYNC_ICONS[reconciler.status]} {reconciler.status.value}",
        title="Sync",
    ))
    choice = await ask("Action", choices=["connect", "new", "menu"], default="menu")
    if choice == "connect":
        other = (await ask("Sync ID")).strip()
        if not other:
            console.print("[red]Enter a sync ID.[/red]")
            return
        if not await confirm("This replaces local data. Continue?"):
            return
        if await reconciler.connect(other):
            console.print("[green]✅ Connected![/green]")
        elif reconciler.status == SyncStatus.ERROR:
            console.print(f"[red]❌ Could not connect to {other}. Local data is unchanged.[/red]")
            return
        else:
            console.print("[yellow]Profile not found; it was created from local data.[/yellow]")
        set_setting(app.settings.db_path, "profile_id", reconciler.profile_id)
        save_progress(app.settings.db_path, app.progress)
    elif choice == "new":
        if not await confirm("⚠️ This erases all progress and starts a new profile. Continue?"):
            return
        app.progress.reset_all()
        save_progress(app.settings.db_path, app.progress)
        new_id = await reconciler.create_profile()
        set_setting(app.settings.db_path, "profile_id", new_id)
        console.print(f"[green]✅ New profile {new_id}[/green]")


async def cmd_clear(app: TrainerApp):
    if not await confirm("Delete history and weak points?"):
        return
    app.progress.clear_stats()
    app.persist()


async def cmd_reset(app: TrainerApp):
    if not await confirm("⚠️ This deletes EVERYTHING. Are you sure?"):
        return
    app.progress.reset_all()
    app.session.mode = None
    app.session.selected_exam_index = None
    app.persist()


COMMANDS = {
    "learn": cmd_learn,
    "exam": cmd_exam,
    "smart": cmd_smart,
    "review": cmd_review,
    "weak": cmd_weak,
    "flagged": cmd_flagged,
    "stats": cmd_stats,
    "history": cmd_history,
    "reshuffle": cmd_reshuffle,
    "sync": cmd_sync,
    "clear": cmd_clear,
    "reset": cmd_reset,
}


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Exam preparation trainer")
    parser.add_argument("--config", help="YAML settings file", default="exam_trainer.yaml")
    parser.add_argument("--questions", help="Question bank (JSON or YAML)")
    parser.add_argument("--db", help="Local progress database")
    args = parser.parse_args(argv)

    settings = load_settings(args.config)
    if args.questions:
        settings.questions_path = args.questions
    if args.db:
        settings.db_path = args.db
    setup_logging(settings.log_level, console)

    try:
        bank = load_questions(settings.questions_path)
    except QuestionBankError as e:
        console.print(f"[red]❌ {e}[/red]")
        return 1
    init_db(settings.db_path)
    progress = load_progress(settings.db_path)
    app = TrainerApp(settings, bank, progress, make_remote(settings))
    return asyncio.run(app.run())


if __name__ == "__main__":
    sys.exit(main())
