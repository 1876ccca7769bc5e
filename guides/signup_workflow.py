"""Example workflow and activities used by the other guides.

Run the pieces with the CLI:

    replayflow activity list guides/signup_workflow.py
    replayflow decider start guides/signup_workflow.py --task-list signup --domain demo
    replayflow activity start guides/signup_workflow.py --task-list signup --domain demo
"""

import asyncio

from replayflow import OperationFailed, activity, workflow


@workflow(name="signup", description="Create an account and send a welcome mail.")
async def signup(input, ctx):
    account, profile = await ctx.gather(
        ctx.activity("create_account", {"email": input["email"]}),
        ctx.activity("load_profile", {"email": input["email"]}),
    )

    # Give the user a minute to confirm before the welcome mail goes out.
    await ctx.first(ctx.timer("confirm_window", 60), ctx.signal("confirmed"))

    try:
        await ctx.activity("send_welcome", {"account": account, "name": profile["name"]})
    except OperationFailed as exc:
        return {"account": account, "welcome_sent": False, "reason": exc.reason}
    return {"account": account, "welcome_sent": True}


@activity(description="Create the account record.")
async def create_account(input, handle):
    await asyncio.sleep(0.1)
    return f"acct-{input['email'].split('@')[0]}"


@activity()
def load_profile(input, handle):
    return {"email": input["email"], "name": input["email"].split("@")[0].title()}


@activity(version="1.1.0", description="Deliver the welcome mail.")
async def send_welcome(input, handle):
    for step in range(3):
        handle.heartbeat(f"rendering {step}")
        await asyncio.sleep(0.05)
    return {"delivered_to": input["name"]}
