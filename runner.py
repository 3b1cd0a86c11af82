########################################
# runner.py (exif_server 를 stdio로 띄워 툴 하나를 호출해보는 스모크 클라이언트)
########################################
import asyncio, sys, os, json, argparse
from contextlib import AsyncExitStack
from mcp.client.session import ClientSession
from mcp.client.stdio import stdio_client, StdioServerParameters

EXIF_SERVER = "servers/exif_server.py"


# CallToolResult → dict 추출 유틸
def extract_payload(res):
    sc = getattr(res, "structuredContent", None)
    if sc is not None:
        return sc
    for c in getattr(res, "content", []) or []:
        t = getattr(c, "type", None)
        if t == "json" and hasattr(c, "json"):
            return c.json
        if t == "text" and hasattr(c, "text"):
            return {"text": c.text}
    return {"raw": str(res)}


async def spawn(stack: AsyncExitStack, path: str) -> ClientSession:
    env = os.environ.copy()
    # servers/ 와 utils/ 가 같은 레벨 → 루트를 PYTHONPATH에 추가
    env["PYTHONPATH"] = os.getcwd() + (os.pathsep + env["PYTHONPATH"] if env.get("PYTHONPATH") else "")
    params = StdioServerParameters(command=sys.executable, args=[path], cwd=os.getcwd(), env=env)
    read, write = await stack.enter_async_context(stdio_client(params))
    sess = ClientSession(read, write)
    await stack.enter_async_context(sess)
    await sess.initialize()
    return sess


def build_arguments(args) -> dict:
    if args.tool in ("parse_exif", "get_gps_coordinates", "strip_exif"):
        return {"filepath": args.images[0]}
    if args.tool == "create_photo_tour_kmz":
        return {"filepaths": args.images, "output_path": args.output}
    if args.tool == "rename_by_exif":
        return {"filepaths": args.images, "template": args.template, "dry_run": not args.apply}
    return {"filepaths": args.images}


async def main():
    ap = argparse.ArgumentParser(description="exif_server 단독 테스트")
    ap.add_argument("tool", choices=[
        "parse_exif", "parse_exif_batch", "get_gps_coordinates",
        "rename_by_exif", "create_photo_tour_kmz", "strip_exif",
    ])
    ap.add_argument("images", nargs="+", help="이미지 파일 경로들")
    ap.add_argument("--output", "-o", default="photo-tour.kmz", help="KMZ 출력 경로")
    ap.add_argument("--template", default="{datetime}_{camera}_{original}")
    ap.add_argument("--apply", action="store_true", help="rename_by_exif 실제 적용 (기본은 미리보기)")
    ap.add_argument("--timeout", type=float, default=60.0, help="툴 호출 타임아웃(초)")
    args = ap.parse_args()

    async with AsyncExitStack() as stack:
        exif = await spawn(stack, EXIF_SERVER)

        tools = await exif.list_tools()
        print("Tools:", [t.name for t in tools.tools], file=sys.stderr)

        try:
            res = await asyncio.wait_for(exif.call_tool(args.tool, build_arguments(args)), timeout=args.timeout)
        except Exception as e:
            print(f"[error] call_tool 실패: {e}", file=sys.stderr)
            sys.exit(2)

        if getattr(res, "isError", False):
            print("[error] 툴이 오류를 반환했습니다.", file=sys.stderr)
        out = extract_payload(res)
        print(json.dumps(out, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    asyncio.run(main())
