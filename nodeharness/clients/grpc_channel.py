import asyncio

import grpc

from nodeharness.env import Env, TimeParser
from nodeharness.errors import NodeTransportError
from nodeharness.scope import TestScope


async def dial(
    scope: TestScope,
    address: str,
    env: Env | None = None,
    credentials: grpc.ChannelCredentials | None = None,
    options: list[tuple[str, str | int]] | None = None,
) -> grpc.aio.Channel:
    """
    Open a gRPC channel and block until it is ready or the dial timeout
    from the env elapses. The channel is closed when the scope closes.
    """

    if env is None:
        env = Env()

    dial_timeout = TimeParser(env.NODE_HARNESS_DIAL_TIMEOUT).time

    if credentials is None:
        channel = grpc.aio.insecure_channel(address, options=options)

    else:
        channel = grpc.aio.secure_channel(address, credentials, options=options)

    try:
        await asyncio.wait_for(channel.channel_ready(), timeout=dial_timeout)

    except asyncio.TimeoutError as err:
        state = channel.get_state()
        await channel.close()
        raise NodeTransportError(
            f"Err. - could not connect to {address} within {dial_timeout}s - channel state {state.name}"
        ) from err

    async def close():
        try:
            await channel.close()

        except grpc.RpcError as err:
            raise NodeTransportError(
                f"Err. - failed to close channel to {address} - {str(err)}"
            ) from err

    scope.add_cleanup(close)

    return channel
