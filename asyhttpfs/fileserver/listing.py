import html
import urllib.parse


def build_entries(request_path, names):
    """
    Turns directory entry names into {url, name} dicts.
    request_path is the (already slash terminated) URL path of the directory.
    """
    entries = []
    for name in names:
        entries.append({
            'url': request_path + urllib.parse.quote(name),
            'name': name,
        })
    return entries


def generate_breadcrumbs(files_prefix, relative_path):
    breadcrumbs = [f'<a href="{html.escape(files_prefix)}/">Root</a>']
    parts = [p for p in relative_path.strip('/').split('/') if p]
    current_path = files_prefix
    for i, part in enumerate(parts):
        current_path += '/' + urllib.parse.quote(part)
        escaped_part = html.escape(part)
        if i == len(parts) - 1:
            breadcrumbs.append(f'<span>{escaped_part}</span>')
        else:
            breadcrumbs.append(f'<a href="{html.escape(current_path)}/">{escaped_part}</a>')
    return ' / '.join(breadcrumbs)


def render_directory_listing(entries, files_prefix='/files', relative_path='/', upload_path='/upload'):
    """Renders the HTML page for a directory listing."""
    breadcrumbs = generate_breadcrumbs(files_prefix, relative_path)
    upload_dir = relative_path.strip('/')
    if upload_dir:
        upload_dir += '/'

    rows = []
    for entry in entries:
        icon = '&#128193;' if entry['name'].endswith('/') else '&#128196;'
        rows.append(
            f'        <li>{icon} <a href="{html.escape(entry["url"])}">{html.escape(entry["name"])}</a></li>'
        )
    if not rows:
        rows.append('        <li><em>empty directory</em></li>')
    rows = '\n'.join(rows)

    return f'''<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>Index of {html.escape(relative_path)}</title>
</head>
<body style="font-family: Arial, sans-serif; margin: 40px;">
    <h1>Index of {html.escape(relative_path)}</h1>
    <p>{breadcrumbs}</p>
    <ul>
{rows}
    </ul>
    <hr>
    <form action="{html.escape(upload_path)}" method="post" enctype="multipart/form-data">
        <input type="text" name="name" value="{html.escape(upload_dir)}">
        <input type="file" name="data">
        <input type="submit" value="Upload">
    </form>
</body>
</html>'''
