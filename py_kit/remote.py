"""
HTTP transport for exchanging objects with a remote py_kit service.

Only moves bytes: the set of objects to send comes from
``collect_reachable`` and received objects are verified by
``ObjectStore.write_raw`` before they land in the store.
"""

import os
import shutil

import requests
from loguru import logger

from py_kit.commit import system_clock
from py_kit.config import DEFAULT_BRANCH
from py_kit.errors import AlreadyExists, InvalidRefName, NoCommits, PyKitError, TransportError
from py_kit.merge import check_staged, checkout_commit, files_of
from py_kit.objects import DIGEST_RE
from py_kit.refs import HEADS
from py_kit.repository import Repository

TIMEOUT = 30


def _request(session, method, url, **kwargs):
    try:
        resp = session.request(method, url, timeout=TIMEOUT, **kwargs)
    except requests.RequestException as e:
        raise TransportError(f"Connection to {url} failed: {e}") from e
    if not resp.ok:
        raise TransportError(f"{method} {url} failed ({resp.status_code}): {resp.text}")
    return resp


def _branch(repo, branch):
    branch = branch or repo.current_branch()
    if not branch:
        raise InvalidRefName("HEAD is detached; name the branch to transfer")
    return branch


def push(repo, repo_name, branch=None, remote='origin', session=None):
    branch = _branch(repo, branch)
    head = repo.refs.read_ref(HEADS + branch)
    if not head:
        raise NoCommits(f"Branch '{branch}' has no commits")

    objects_data = []
    for digest in sorted(repo.collect_reachable(head)):
        obj_type, _ = repo.store.get(digest)
        objects_data.append({
            "digest": digest,
            "type": obj_type,
            "data": repo.store.read_raw(digest).hex(),
        })

    payload = {"objects": objects_data, "head": head, "ref": f"{HEADS}{branch}"}
    url = f"{repo.config.remote_url(remote)}/{repo_name}/push"
    _request(session or requests.Session(), "POST", url, json=payload)

    logger.bind(branch=branch, head=head[:8]).info(f"Pushed {len(objects_data)} objects to {url}")
    return len(objects_data)


def pull(repo, repo_name, branch=None, remote='origin', session=None):
    branch = _branch(repo, branch)
    url = f"{repo.config.remote_url(remote)}/{repo_name}/pull"
    resp = _request(session or requests.Session(), "GET", url, params={"branch": branch})

    try:
        data = resp.json()
        head = data["head"]
        objects_data = data["objects"]
    except (ValueError, KeyError, TypeError) as e:
        raise TransportError(f"Malformed pull response from {url}: {e}") from e

    new_objects = 0
    try:
        for obj in objects_data:
            if repo.store.write_raw(obj["digest"], bytes.fromhex(obj["data"])):
                new_objects += 1
    except (ValueError, KeyError, TypeError) as e:
        raise TransportError(f"Malformed object in pull response from {url}: {e}") from e

    if not isinstance(head, str) or not DIGEST_RE.match(head) or not repo.store.exists(head):
        raise TransportError(f"Remote head {head!r} was not among the pulled objects")
    if repo.store.get(head)[0] != "commit":
        raise TransportError(f"Remote head {head[:8]} is not a commit")

    ref = f"{HEADS}{branch}"
    if repo.current_branch() == branch:
        previous = files_of(repo, repo.refs.read_ref(ref))
        check_staged(repo, files_of(repo, head), previous)
        repo.refs.update(ref, head)
        checkout_commit(repo, head, previous)
    else:
        repo.refs.update(ref, head)

    logger.bind(branch=branch, head=head[:8]).info(f"Pulled {new_objects} new objects from {url}")
    return new_objects


def clone(repo_name, directory, remote_url=None, branch=DEFAULT_BRANCH, session=None,
          clock=system_clock):
    """Create a repository in ``directory`` and pull ``branch`` of ``repo_name`` into it.

    ``directory`` must be missing or empty. When the pull fails, whatever
    this call created is removed again.
    """
    if os.path.exists(directory) and not (os.path.isdir(directory) and not os.listdir(directory)):
        raise AlreadyExists(f"Destination '{directory}' already exists and is not empty")
    created = not os.path.exists(directory)
    os.makedirs(directory, exist_ok=True)

    repo = Repository.init(directory, branch=branch, clock=clock)
    try:
        if remote_url:
            repo.config.add_remote('origin', remote_url)
        pull(repo, repo_name, branch=branch, session=session)
    except PyKitError:
        shutil.rmtree(directory)
        if not created:
            os.makedirs(directory)
        raise

    logger.bind(branch=branch).info(f"Cloned {repo_name} into {repo.root}")
    return repo
