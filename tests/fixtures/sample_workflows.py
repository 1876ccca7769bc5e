"""Workflows and activities loaded by path in CLI and registry tests."""

from replayflow import activity, workflow


@workflow(name="greeting", description="Fetch a user and greet them.")
async def greeting_workflow(input, ctx):
    user = await ctx.activity("fetch_user", {"id": input["id"]})
    return await ctx.activity("greet", user)


@activity()
async def fetch_user(input, handle):
    """Load a user record."""
    return {"id": input["id"], "name": "Ann"}


@activity(name="greet", version="1.2.0")
def greet_user(input, handle):
    return f"Hello {input['name']}"


def uppercase(input, handle):
    return str(input).upper()


activities = {"uppercase": uppercase}
