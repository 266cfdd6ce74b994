"""
Command Line Interface for tierflow.
"""

import functools
import json
from contextlib import contextmanager
from pathlib import Path

import click

from .version import VERSION, APP_SCHEMA_VERSION
from .clock import SystemClock
from .config import load_settings
from .data import load_store, save_store, EntityStore, ProjectKey, CounterKey
from .data.validate import snapshot_schema
from .manager import WorkflowManager
from .models import Status, Role, ContextType
from .recovery import TierflowError, WorkflowError
from .logs import get_logger

log = get_logger("cli")

STATUS_CHOICES = [s.value for s in Status]
ROLE_CHOICES = [r.name.lower() for r in Role if r != Role.NONE]
CONTEXT_CHOICES = [c.value for c in ContextType]


class CliState:
    def __init__(self, settings):
        self.settings = settings
        self.clock = SystemClock()

    @contextmanager
    def manager(self, save: bool = False):
        """Load the store, hand out a manager, and persist it afterwards if asked."""
        store = load_store(self.settings.store_path)
        yield WorkflowManager(store, self.clock)
        if save:
            save_store(store, self.settings.store_path)


def reports_errors(func):
    """Turn tierflow errors into a one-line message and a non-zero exit code."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except WorkflowError as e:
            click.echo(f"❌ {e}", err=True)
            raise SystemExit(1)
        except TierflowError as e:
            log.error(f"{type(e).__name__}: {e}")
            click.echo(f"💥 {type(e).__name__}: {e}", err=True)
            raise SystemExit(2)
    return wrapper


def resolve_deadline(clock, deadline, due_in):
    if (deadline is None) == (due_in is None):
        raise click.UsageError("Give exactly one of --deadline or --due-in")
    return deadline if deadline is not None else clock.now() + due_in


def deadline_options(func):
    func = click.option('--due-in', type=click.IntRange(min=0), help='Deadline as seconds from now')(func)
    func = click.option('--deadline', type=click.IntRange(min=0), help='Deadline as an absolute Unix time')(func)
    return func


def actor_of(ctx) -> str:
    return ctx.obj.settings.actor


@click.group()
@click.version_option(version=VERSION, prog_name="tflow")
@click.option('--as', 'actor', help='Identity to act as (default: $TIERFLOW_ACTOR or login name)')
@click.option('--data-dir', type=click.Path(file_okay=False, path_type=Path), help='Directory holding the store')
@click.pass_context
@reports_errors
def main(ctx, actor, data_dir):
    """
    tierflow - projects, milestones and tasks with status cascades.
    """
    settings = load_settings()
    if actor:
        settings.actor = actor
    if data_dir:
        settings.data_dir = data_dir
    ctx.obj = CliState(settings)


@main.command()
@click.pass_context
@reports_errors
def init(ctx):
    """Create an empty store in the data directory."""
    path = ctx.obj.settings.store_path
    if path.exists():
        click.echo(f"❌ Store already initialized ({path})")
        return
    save_store(EntityStore(), path)
    click.echo(f"✅ Created {path}")


@main.command()
@click.pass_context
@reports_errors
def status(ctx):
    """Show version and store information."""
    settings = ctx.obj.settings
    click.echo(f"📦 Version: {VERSION} (schema {APP_SCHEMA_VERSION})")
    click.echo(f"👤 Acting as: {settings.actor}")
    if not settings.store_path.exists():
        click.echo(f"❌ No store at {settings.store_path}")
        click.echo("💡 Run 'tflow init' to create one")
        return
    click.echo(f"📍 Store: {settings.store_path}")
    with ctx.obj.manager() as mgr:
        count = mgr.store.count(CounterKey.projects())
        click.echo(f"📋 Projects: {count}")
        for project_id in range(1, count + 1):
            project = mgr.store.get(ProjectKey(project_id))
            click.echo(f"   {project.id}. {project.name} [{project.status.value}]")


@main.command()
def schema():
    """Print the JSON Schema of the store file."""
    click.echo(json.dumps(snapshot_schema(), indent=2))


# --- projects -------------------------------------------------------------

@main.group()
def project():
    """Create and inspect projects."""
    pass


@project.command('create')
@click.argument('name')
@click.option('-d', '--description', default='', help='Project description')
@deadline_options
@click.pass_context
@reports_errors
def project_create(ctx, name, description, deadline, due_in):
    """Create a project; you become its admin."""
    with ctx.obj.manager(save=True) as mgr:
        project_id = mgr.create_project(actor_of(ctx), name, description,
                                        resolve_deadline(mgr.clock, deadline, due_in))
    click.echo(f"✅ Created project {project_id}")


@project.command('show')
@click.argument('project_id', type=int)
@click.pass_context
@reports_errors
def project_show(ctx, project_id):
    """Show a project and its milestones."""
    with ctx.obj.manager() as mgr:
        p = mgr.get_project(project_id)
        click.echo(f"📋 {p.id}. {p.name} [{p.status.value}] due {p.deadline}")
        if p.description:
            click.echo(f"   {p.description}")
        click.echo(f"   👤 Creator: {p.creator}")
        for m in mgr.list_milestones(project_id):
            tasks = mgr.list_tasks(project_id, m.milestone_id)
            done = sum(1 for t in tasks if t.status.terminal_complete)
            click.echo(f"   🏁 {m.milestone_id}. {m.name} [{m.status.value}] {done}/{len(tasks)} tasks done")


# --- members --------------------------------------------------------------

@main.group()
def member():
    """Manage project team members."""
    pass


@member.command('add')
@click.argument('project_id', type=int)
@click.argument('member_name')
@click.argument('role', type=click.Choice(ROLE_CHOICES, case_sensitive=False))
@click.pass_context
@reports_errors
def member_add(ctx, project_id, member_name, role):
    """Add MEMBER_NAME to a project with ROLE."""
    with ctx.obj.manager(save=True) as mgr:
        mgr.add_team_member(actor_of(ctx), project_id, member_name, role)
    click.echo(f"✅ Added {member_name} as {role}")


@member.command('list')
@click.argument('project_id', type=int)
@click.pass_context
@reports_errors
def member_list(ctx, project_id):
    """List the team of a project."""
    with ctx.obj.manager() as mgr:
        for m in mgr.list_team_members(project_id):
            click.echo(f"👤 {m.member} ({m.role.name.lower()})")


# --- milestones -----------------------------------------------------------

@main.group()
def milestone():
    """Create and update milestones."""
    pass


@milestone.command('create')
@click.argument('project_id', type=int)
@click.argument('name')
@click.option('-d', '--description', default='', help='Milestone description')
@deadline_options
@click.pass_context
@reports_errors
def milestone_create(ctx, project_id, name, description, deadline, due_in):
    """Create a milestone in a project (admin only)."""
    with ctx.obj.manager(save=True) as mgr:
        milestone_id = mgr.create_milestone(actor_of(ctx), project_id, name, description,
                                            resolve_deadline(mgr.clock, deadline, due_in))
    click.echo(f"✅ Created milestone {project_id}/{milestone_id}")


@milestone.command('status')
@click.argument('project_id', type=int)
@click.argument('milestone_id', type=int)
@click.argument('new_status', type=click.Choice(STATUS_CHOICES, case_sensitive=False))
@click.pass_context
@reports_errors
def milestone_status(ctx, project_id, milestone_id, new_status):
    """Set the status of a milestone (admin only)."""
    with ctx.obj.manager(save=True) as mgr:
        mgr.update_milestone_status(actor_of(ctx), project_id, milestone_id, new_status)
        project_status = mgr.get_project(project_id).status
    click.echo(f"✅ Milestone {project_id}/{milestone_id} is now {new_status}")
    click.echo(f"   📋 Project {project_id}: {project_status.value}")


@milestone.command('list')
@click.argument('project_id', type=int)
@click.pass_context
@reports_errors
def milestone_list(ctx, project_id):
    """List the milestones of a project."""
    with ctx.obj.manager() as mgr:
        for m in mgr.list_milestones(project_id):
            click.echo(f"🏁 {m.milestone_id}. {m.name} [{m.status.value}] due {m.deadline}")


# --- tasks ----------------------------------------------------------------

@main.group()
def task():
    """Create, assign and update tasks."""
    pass


@task.command('create')
@click.argument('project_id', type=int)
@click.argument('milestone_id', type=int)
@click.argument('name')
@click.option('-d', '--description', default='', help='Task description')
@click.option('--depends', multiple=True, type=click.IntRange(min=1), help='Task id in the same milestone (repeatable)')
@deadline_options
@click.pass_context
@reports_errors
def task_create(ctx, project_id, milestone_id, name, description, depends, deadline, due_in):
    """Create a task in a milestone (members and admins)."""
    with ctx.obj.manager(save=True) as mgr:
        task_id = mgr.create_task(actor_of(ctx), project_id, milestone_id, name, description,
                                  resolve_deadline(mgr.clock, deadline, due_in), list(depends))
    click.echo(f"✅ Created task {project_id}/{milestone_id}/{task_id}")


@task.command('assign')
@click.argument('project_id', type=int)
@click.argument('milestone_id', type=int)
@click.argument('task_id', type=int)
@click.argument('assignee')
@click.pass_context
@reports_errors
def task_assign(ctx, project_id, milestone_id, task_id, assignee):
    """Hand a task to a team member."""
    with ctx.obj.manager(save=True) as mgr:
        mgr.assign_task(actor_of(ctx), project_id, milestone_id, task_id, assignee)
    click.echo(f"✅ Task {project_id}/{milestone_id}/{task_id} assigned to {assignee}")


@task.command('status')
@click.argument('project_id', type=int)
@click.argument('milestone_id', type=int)
@click.argument('task_id', type=int)
@click.argument('new_status', type=click.Choice(STATUS_CHOICES, case_sensitive=False))
@click.pass_context
@reports_errors
def task_status(ctx, project_id, milestone_id, task_id, new_status):
    """Set the status of a task (admin or assignee)."""
    with ctx.obj.manager(save=True) as mgr:
        mgr.update_task_status(actor_of(ctx), project_id, milestone_id, task_id, new_status)
        milestone_status = mgr.get_milestone(project_id, milestone_id).status
        project_status = mgr.get_project(project_id).status
    click.echo(f"✅ Task {project_id}/{milestone_id}/{task_id} is now {new_status}")
    click.echo(f"   🏁 Milestone {project_id}/{milestone_id}: {milestone_status.value}")
    click.echo(f"   📋 Project {project_id}: {project_status.value}")


def _echo_task(t):
    deps = f" after {','.join(str(d) for d in t.dependencies)}" if t.dependencies else ""
    who = t.assignee or "unassigned"
    click.echo(f"📝 {t.milestone_id}/{t.task_id}. {t.name} [{t.status.value}] due {t.deadline} ({who}){deps}")


@task.command('list')
@click.argument('project_id', type=int)
@click.argument('milestone_id', type=int)
@click.pass_context
@reports_errors
def task_list(ctx, project_id, milestone_id):
    """List the tasks of a milestone."""
    with ctx.obj.manager() as mgr:
        for t in mgr.list_tasks(project_id, milestone_id):
            _echo_task(t)


@task.command('mine')
@click.argument('project_id', type=int)
@click.option('--user', help='Show tasks of this member instead of your own')
@click.pass_context
@reports_errors
def task_mine(ctx, project_id, user):
    """List the tasks assigned to you (or --user) in a project."""
    with ctx.obj.manager() as mgr:
        tasks = mgr.tasks_by_assignee(project_id, user or actor_of(ctx))
    if not tasks:
        click.echo("📭 No tasks assigned")
    for t in tasks:
        _echo_task(t)


@main.command()
@click.argument('project_id', type=int)
@click.argument('window', type=click.IntRange(min=0))
@click.pass_context
@reports_errors
def upcoming(ctx, project_id, window):
    """Open tasks due within WINDOW seconds."""
    with ctx.obj.manager() as mgr:
        tasks = mgr.upcoming_deadlines(project_id, window)
    if not tasks:
        click.echo("📭 Nothing due")
    for t in tasks:
        _echo_task(t)


# --- communications -------------------------------------------------------

@main.group()
def comm():
    """Post and read project messages."""
    pass


@comm.command('add')
@click.argument('project_id', type=int)
@click.argument('message')
@click.option('--on', 'context_type', type=click.Choice(CONTEXT_CHOICES), default='project',
              help='What the message is about')
@click.option('--id', 'context_id', help="Milestone id, or 'milestone/task' for a task")
@click.pass_context
@reports_errors
def comm_add(ctx, project_id, message, context_type, context_id):
    """Post MESSAGE to a project."""
    with ctx.obj.manager(save=True) as mgr:
        comm_id = mgr.add_communication(actor_of(ctx), project_id, message, context_type,
                                        context_id if context_id is not None else project_id)
    click.echo(f"✅ Posted message {comm_id}")


@comm.command('list')
@click.argument('project_id', type=int)
@click.pass_context
@reports_errors
def comm_list(ctx, project_id):
    """Show the message log of a project."""
    with ctx.obj.manager() as mgr:
        for c in mgr.list_communications(project_id):
            click.echo(f"💬 [{c.timestamp}] {c.sender} on {c.context_type.value} {c.context_id}: {c.message}")


if __name__ == "__main__":
    main()
