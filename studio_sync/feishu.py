"""
Feishu Open API client: tenant token, wiki node creation, markdown conversion, block writes.
飞书开放平台接口：租户令牌、创建文档节点、Markdown 转换、写入 block。

Every call returns a Result. A call succeeds only when the response body
carries `code == 0`; HTTP status alone is not enough.
"""
import json
import urllib.error
import urllib.parse
import urllib.request

from studio_sync.config import HTTP_TIMEOUT
from studio_sync.models import (
    AUTH_FAILURE, PLATFORM_REJECTED, TRANSPORT_FAILURE,
    DocumentHandle, Result,
)

OPEN_API = "https://open.feishu.cn/open-apis"
TOKEN_URL = f"{OPEN_API}/auth/v3/tenant_access_token/internal/"
CREATE_NODE_URL = OPEN_API + "/wiki/v2/spaces/{space_id}/nodes"
CONVERT_URL = f"{OPEN_API}/docx/v1/documents/blocks/convert"
CHILDREN_URL = OPEN_API + "/docx/v1/documents/{document_id}/blocks/{block_id}/children"
DESCENDANT_URL = OPEN_API + "/docx/v1/documents/{document_id}/blocks/{block_id}/descendant"

LATEST_REVISION = -1
CHILDREN_BATCH = 50
# Per-call block cap of the descendant endpoint.
DESCENDANT_BATCH = 1000


class FeishuApiError(Exception):
    """Network failure or a response body that is not a JSON object."""


def post_json(url, body, token=None, timeout=HTTP_TIMEOUT):
    """POST a JSON body and return the decoded JSON object."""
    headers = {"Content-Type": "application/json; charset=utf-8"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    req = urllib.request.Request(
        url,
        data=json.dumps(body, ensure_ascii=False).encode("utf-8"),
        headers=headers,
        method="POST",
    )
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            raw = resp.read()
    except urllib.error.HTTPError as e:
        # Feishu reports rejected requests as 4xx with a JSON body carrying `code`.
        raw = e.read()
    except OSError as e:
        raise FeishuApiError(f"network error: {e}") from e

    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise FeishuApiError(f"malformed response: {e}") from e
    if not isinstance(data, dict):
        raise FeishuApiError("malformed response: not a JSON object")
    return data


def _dig(data, *keys):
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _with_revision(url):
    return url + "?" + urllib.parse.urlencode({"document_revision_id": LATEST_REVISION})


def _block_id(block):
    block_id = block.get("block_id") if isinstance(block, dict) else None
    return block_id if isinstance(block_id, str) else None


def split_descendants(payload, limit=DESCENDANT_BATCH):
    """
    Split a descendant payload into requests of at most `limit` blocks.

    Each first-level block travels with its whole subtree, so a split never
    separates a block from its children. Index advances by the first-level
    blocks already sent. Blocks reachable from no first-level id ride with
    the last request.
    """
    blocks = payload.get("descendants") or []
    if len(blocks) <= limit:
        return [payload]

    by_id = {}
    for block in blocks:
        if _block_id(block):
            by_id.setdefault(_block_id(block), block)

    seen = set()

    def subtree(root):
        members, stack = [], [root]
        while stack:
            block_id = stack.pop()
            if block_id in seen or block_id not in by_id:
                continue
            seen.add(block_id)
            members.append(block_id)
            children = by_id[block_id].get("children")
            if isinstance(children, list):
                stack.extend(c for c in reversed(children) if isinstance(c, str))
        return members

    groups = []
    top_ids, members = [], []
    for top in payload.get("children_id") or []:
        tree = subtree(top)
        if top_ids and len(members) + len(tree) > limit:
            groups.append((top_ids, members))
            top_ids, members = [], []
        top_ids.append(top)
        members.extend(tree)
    if top_ids or not groups:
        groups.append((top_ids, members))

    requests = []
    index = payload.get("index", 0)
    for n, (top_ids, members) in enumerate(groups):
        wanted = set(members)
        if n == len(groups) - 1:
            chosen = [b for b in blocks if _block_id(b) in wanted or _block_id(b) not in seen]
        else:
            chosen = [b for b in blocks if _block_id(b) in wanted]
        requests.append({"index": index, "children_id": top_ids, "descendants": chosen})
        index += len(top_ids)
    return requests


class FeishuClient:
    """
    Access token provider and document publisher.

    `post` is the transport: post(url, body, token=None, timeout=None) -> dict,
    raising FeishuApiError on network or parsing failure.
    No call is retried and no token is cached.
    """

    def __init__(self, post=post_json, timeout=HTTP_TIMEOUT, descendant_batch=DESCENDANT_BATCH):
        self._post = post
        self.timeout = timeout
        self.descendant_batch = descendant_batch

    def _request(self, action, url, body, token=None, rejected=PLATFORM_REJECTED):
        try:
            data = self._post(url, body, token=token, timeout=self.timeout)
        except FeishuApiError as e:
            print(f"[Feishu/飞书] ❌ {action}: {e}")
            return Result.failure(TRANSPORT_FAILURE, f"{action}: {e}")
        code = data.get("code", -1)
        if code != 0:
            print(f"[Feishu/飞书] ❌ {action}: code={code} msg={data.get('msg', '')}")
            return Result.failure(rejected, f"{action}: platform code {code}")
        return Result.success(data)

    # ------------------------------------------------------------
    # Access token
    # ------------------------------------------------------------

    def acquire_token(self, app_id, app_secret):
        """Exchange the app identity pair for a tenant access token."""
        res = self._request(
            "tenant_access_token", TOKEN_URL,
            {"app_id": app_id, "app_secret": app_secret},
            rejected=AUTH_FAILURE,
        )
        if not res:
            return res
        token = res.value.get("tenant_access_token")
        if not isinstance(token, str) or not token:
            print("[Feishu/飞书] ❌ tenant_access_token missing / 响应缺少令牌")
            return Result.failure(AUTH_FAILURE, "tenant_access_token: missing token")
        return Result.success(token)

    # ------------------------------------------------------------
    # Document publisher
    # ------------------------------------------------------------

    def create_document(self, token, folder_token, title):
        """Create a docx node under the wiki space / folder. Value: DocumentHandle."""
        url = CREATE_NODE_URL.format(space_id=urllib.parse.quote(folder_token, safe=""))
        res = self._request(
            "create_node", url,
            {"obj_type": "docx", "node_type": "origin", "title": title},
            token=token,
        )
        if not res:
            return res
        obj_token = _dig(res.value, "data", "node", "obj_token")
        if not isinstance(obj_token, str) or not obj_token:
            print("[Feishu/飞书] ❌ create_node: obj_token missing / 响应缺少 obj_token")
            return Result.failure(PLATFORM_REJECTED, "create_node: missing obj_token")
        print(f"[Feishu/飞书] ✅ Document created / 文档已创建: {obj_token}")
        return Result.success(DocumentHandle(obj_token))

    def convert_markdown(self, token, markdown):
        """Convert markdown to docx blocks. Value: (blocks, first_level_block_ids)."""
        res = self._request(
            "convert", CONVERT_URL,
            {"content_type": "markdown", "content": markdown},
            token=token,
        )
        if not res:
            return res
        blocks = _dig(res.value, "data", "blocks")
        ids = _dig(res.value, "data", "first_level_block_ids")
        if not isinstance(blocks, list) or not isinstance(ids, list):
            print("[Feishu/飞书] ❌ convert: blocks missing / 响应缺少 blocks")
            return Result.failure(PLATFORM_REJECTED, "convert: malformed blocks")
        return Result.success((blocks, ids))

    def write_blocks(self, token, handle, root_block_id, payload):
        """
        Append blocks under `root_block_id` at the latest revision.

        Payloads carrying `descendants` (nested trees from conversion) go to the
        descendant endpoint, split by first-level block once they exceed the
        per-call cap; flat `children` payloads are sent in batches the children
        endpoint accepts. The first failing batch fails the write; batches
        already written stay in the document.
        """
        path = {
            "document_id": urllib.parse.quote(handle.obj_token, safe=""),
            "block_id": urllib.parse.quote(root_block_id, safe=""),
        }
        if "descendants" in payload:
            url = _with_revision(DESCENDANT_URL.format(**path))
            for batch in split_descendants(payload, self.descendant_batch):
                res = self._request("write_descendants", url, batch, token=token)
                if not res:
                    return res
            return Result.success()

        url = _with_revision(CHILDREN_URL.format(**path))
        children = payload.get("children") or []
        index = payload.get("index", 0)
        for start in range(0, len(children), CHILDREN_BATCH):
            batch = children[start:start + CHILDREN_BATCH]
            res = self._request(
                "write_children", url,
                {"index": index + start, "children": batch}, token=token,
            )
            if not res:
                return res
        print(f"[Feishu/飞书] ✅ Wrote {len(children)} blocks / 已写入 {len(children)} 个 block")
        return Result.success()
